from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('links', '0001_initial'),
        ('users', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='usermodel',
            name='upvoted_links',
            field=models.ManyToManyField(related_name='voters', through='links.VoteModel', to='links.linkmodel'),
        ),
    ]
