from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Team',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, unique=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'teams',
            },
        ),
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.CharField(max_length=50, primary_key=True, serialize=False)),
                ('username', models.CharField(max_length=100)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                (
                    'team',
                    models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE,
                                      related_name='members', to='reviews.team'),
                ),
            ],
            options={
                'db_table': 'users',
                'indexes': [models.Index(fields=['team', 'is_active'], name='idx_users_team_active')],
            },
        ),
        migrations.CreateModel(
            name='PullRequest',
            fields=[
                ('id', models.CharField(max_length=100, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=200)),
                (
                    'status',
                    models.CharField(choices=[('OPEN', 'Open'), ('MERGED', 'Merged')], db_index=True,
                                     default='OPEN', max_length=10),
                ),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('merged_at', models.DateTimeField(blank=True, null=True)),
                (
                    'author',
                    models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='authored_prs',
                                      to='reviews.user'),
                ),
            ],
            options={
                'db_table': 'pull_requests',
            },
        ),
        migrations.CreateModel(
            name='ReviewAssignment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                (
                    'pull_request',
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='assignments',
                                      to='reviews.pullrequest'),
                ),
                (
                    'reviewer',
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='review_assignments',
                                      to='reviews.user'),
                ),
            ],
            options={
                'db_table': 'pr_reviewers',
            },
        ),
        migrations.AddConstraint(
            model_name='reviewassignment',
            constraint=models.UniqueConstraint(fields=('pull_request', 'reviewer'), name='uq_pr_reviewer'),
        ),
        migrations.AddField(
            model_name='pullrequest',
            name='reviewers',
            field=models.ManyToManyField(blank=True, related_name='assigned_prs', through='reviews.ReviewAssignment',
                                         to='reviews.user'),
        ),
    ]
