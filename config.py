import os
import yaml
import keyring
from keyring.errors import PasswordDeleteError

APP_VERSION = "1.0.0"


class YamlConfig:
    """Studio settings stored in a YAML file.

    With ``ENCRYPT_SETTINGS=1`` secret values such as the notification webhook
    are kept in the system keyring and the file only records that one is set.
    """

    SENSITIVE_KEYS = {
        "notification_webhook_url",
    }
    SERVICE = "studio-presenter"

    def __init__(self, path: str | None = None) -> None:
        self.path = path or os.environ.get("STUDIO_SETTINGS", "settings.yaml")
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"

    def _reveal(self, data: dict) -> dict:
        for key in self.SENSITIVE_KEYS & set(data):
            secret = keyring.get_password(self.SERVICE, key)
            if secret is None:
                data.pop(key)
            else:
                data[key] = secret
        return data

    def _conceal(self, data: dict) -> dict:
        for key in self.SENSITIVE_KEYS & set(data):
            if data[key] and data[key] is not True:
                keyring.set_password(self.SERVICE, key, str(data[key]))
                data[key] = True
            elif not data[key]:
                self.forget_secret(key)
                data.pop(key)
        return data

    def forget_secret(self, key: str) -> None:
        try:
            keyring.delete_password(self.SERVICE, key)
        except PasswordDeleteError:
            pass

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return self._reveal(data) if self.encrypt else data

    def save(self, data: dict) -> None:
        out = dict(data)
        if self.encrypt:
            out = self._conceal(out)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f, sort_keys=True)

    def update(self, **values) -> dict:
        """Merge ``values`` into the stored settings and return the result."""
        data = self.load()
        data.update(values)
        self.save(data)
        return data
