from kivy.logger import Logger
from kivy.storage.jsonstore import JsonStore

from directions import DEFAULT_CODES

SETTINGS_FILE = 'polyauto_settings.json'


def default_settings():
    settings = {
        'transport': 'auto',
        'baudrate': 9600,
        'speed': 0.5,
    }
    for direction, code in DEFAULT_CODES.items():
        settings[direction.setting_key] = code
    return settings


class SettingsManager:
    def __init__(self, path=SETTINGS_FILE):
        self.path = path
        self.store = JsonStore(path)

    def get(self, key, default=None):
        """Stored value for key, or the given default, or the built-in one."""
        if default is None:
            default = default_settings().get(key)
        try:
            if self.store.exists(key):
                return self.store.get(key).get('value', default)
            return default
        except Exception as e:
            Logger.warning(f"Settings: read error for {key}: {e}")
            return default

    def set(self, key, value):
        self.store.put(key, value=value)
