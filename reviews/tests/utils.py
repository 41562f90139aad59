class ScriptedRandom:
    """
    Детерминированный источник случайности для ReviewerSelector.

    sample берет первые k кандидатов (пул упорядочен по id),
    choice возвращает следующий id из picks, если он есть в пуле,
    иначе первого кандидата.
    """

    def __init__(self, picks=None):
        self.picks = list(picks or [])
        self.sample_calls = []
        self.choice_calls = []

    def sample(self, population, k):
        self.sample_calls.append((list(population), k))
        return list(population)[:k]

    def choice(self, seq):
        self.choice_calls.append(list(seq))
        if self.picks and self.picks[0] in seq:
            return self.picks.pop(0)
        return seq[0]
