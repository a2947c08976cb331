"""Windows registry access: machine-scope values and installed-program records.

winreg is imported lazily so the rest of the package imports on any OS.
"""

import logging

logger = logging.getLogger(__name__)

UNINSTALL_KEYS = (
    r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall",
    r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall",
)


class RegistryBackend:
    """Key/value backend over a single HKEY_LOCAL_MACHINE key.

    ints are stored as REG_DWORD, lists as REG_MULTI_SZ, everything else as
    REG_SZ. The key is created on first write.
    """

    def __init__(self, key_path: str):
        self.key_path = key_path

    def read(self, name: str):
        import winreg

        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, self.key_path) as key:
                value, _kind = winreg.QueryValueEx(key, name)
        except FileNotFoundError:
            return None
        return value

    def write(self, name: str, value):
        import winreg

        if isinstance(value, bool):
            kind, value = winreg.REG_DWORD, int(value)
        elif isinstance(value, int):
            kind = winreg.REG_DWORD
        elif isinstance(value, (list, tuple)):
            kind, value = winreg.REG_MULTI_SZ, [str(v) for v in value]
        else:
            kind, value = winreg.REG_SZ, str(value)

        with winreg.CreateKeyEx(winreg.HKEY_LOCAL_MACHINE, self.key_path, 0,
                                winreg.KEY_SET_VALUE) as key:
            winreg.SetValueEx(key, name, 0, kind, value)
        logger.debug("HKLM\\%s\\%s = %r", self.key_path, name, value)

    def delete(self, name: str):
        import winreg

        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, self.key_path, 0,
                                winreg.KEY_SET_VALUE) as key:
                winreg.DeleteValue(key, name)
        except FileNotFoundError:
            pass

    def names(self) -> list[str]:
        import winreg

        result = []
        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, self.key_path) as key:
                index = 0
                while True:
                    try:
                        name, _value, _kind = winreg.EnumValue(key, index)
                    except OSError:
                        break
                    result.append(name)
                    index += 1
        except FileNotFoundError:
            pass
        return result


def installed_program_names() -> list[str]:
    """DisplayName of every machine-wide uninstall record (64- and 32-bit views)."""
    import winreg

    names = []
    for root in UNINSTALL_KEYS:
        try:
            parent = winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, root)
        except FileNotFoundError:
            continue
        with parent:
            index = 0
            while True:
                try:
                    sub = winreg.EnumKey(parent, index)
                except OSError:
                    break
                index += 1
                try:
                    with winreg.OpenKey(parent, sub) as entry:
                        display_name, _kind = winreg.QueryValueEx(entry, 'DisplayName')
                except OSError:
                    continue
                if display_name:
                    names.append(str(display_name))
    return names
