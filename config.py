import os
import yaml
import keyring

APP_VERSION = "1.0.0"


class YamlConfig:
    """Load and save runner settings to a YAML file, keeping secrets in the keyring."""

    SENSITIVE_KEYS = {"api_token"}

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"
        self.service = "setrunner"

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if self.encrypt:
            for key in self.SENSITIVE_KEYS & set(data):
                secret = keyring.get_password(self.service, key)
                if secret is None:
                    data.pop(key)
                else:
                    data[key] = secret
        return data

    def save(self, data: dict) -> None:
        out = dict(data)
        if self.encrypt:
            for key in self.SENSITIVE_KEYS & set(out):
                keyring.set_password(self.service, key, str(out[key]))
                out[key] = "<keyring>"
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f)
