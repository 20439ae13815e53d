from tortoise import fields, models

class HashTable(models.Model):
    id = fields.IntField(primary_key=True)
    channel_id = fields.BigIntField(unique=True)
    image_count = fields.IntField()
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "hash_tables"

class ImageOccurrence(models.Model):
    id = fields.IntField(primary_key=True)
    channel_id = fields.BigIntField(db_index=True)
    seq = fields.IntField()  # position in the table, original first
    phash = fields.CharField(max_length=128)
    is_original = fields.BooleanField()
    message_id = fields.BigIntField()
    url = fields.TextField()
    author_id = fields.BigIntField()
    author_name = fields.TextField()
    timestamp = fields.BigIntField()  # epoch millis
    location = fields.TextField()

    class Meta:
        table = "image_occurrences"
