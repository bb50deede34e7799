from datetime import datetime, timezone

from liga_typerow import db


class Setting(db.Model):
    """Runtime key/value overrides for scoring configuration and deadlines"""

    __tablename__ = "settings"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False, index=True)
    value = db.Column(db.JSON, nullable=True)

    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<Setting {self.key}={self.value!r}>"

    @staticmethod
    def get_value(key, default=None):
        setting = Setting.query.filter_by(key=key).first()
        if setting is None or setting.value is None:
            return default
        return setting.value

    @staticmethod
    def set_value(key, value):
        setting = Setting.query.filter_by(key=key).first()
        if setting is None:
            setting = Setting(key=key)
            db.session.add(setting)
        setting.value = value
        return setting
