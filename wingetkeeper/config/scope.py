"""winget installation-scope preference, merged non-destructively into settings.json.

winget reads its settings from a JSON file under the DesktopAppInstaller
package's LocalState folder. We only ever add or correct the
installBehavior scope entries; every other key the user or another tool
wrote must survive.
"""

import copy
import json
import logging
import os

logger = logging.getLogger(__name__)

SCHEMA_URL = "https://aka.ms/winget-settings.schema.json"
PACKAGE_FAMILY = "Microsoft.DesktopAppInstaller_8wekyb3d8bbwe"
MACHINE = "machine"

PREFERENCES_PATH = ('installBehavior', 'preferences', 'scope')
REQUIREMENTS_PATH = ('installBehavior', 'requirements', 'scope')


def scope_document_path(system_context: bool) -> str:
    """Location of winget's settings.json for SYSTEM or for the current user."""
    if system_context:
        windir = os.environ.get('WINDIR', r'C:\Windows')
        profile_local = os.path.join(windir, 'System32', 'config', 'systemprofile',
                                     'AppData', 'Local')
    else:
        profile_local = os.environ.get('LOCALAPPDATA', '.')
    return os.path.join(profile_local, 'Packages', PACKAGE_FAMILY,
                        'LocalState', 'settings.json')


def skeleton() -> dict:
    return {'$schema': SCHEMA_URL}


def ensure_path(tree: dict, path: tuple[str, ...], value) -> bool:
    """Set tree[path[0]]...[path[-1]] = value, creating only missing objects.

    Returns True if the tree changed. An intermediate that exists but is not
    an object cannot hold the path and is replaced.
    """
    node = tree
    changed = False
    for key in path[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            if child is not None:
                logger.warning("Replacing non-object %r at '%s'", child, key)
            child = {}
            node[key] = child
            changed = True
        node = child

    leaf = path[-1]
    if node.get(leaf) != value:
        node[leaf] = value
        changed = True
    return changed


def apply_machine_scope(document: dict | None, machine_scope_only: bool) -> dict:
    """Return a copy of document preferring (and optionally requiring) machine scope."""
    result = copy.deepcopy(document) if document is not None else skeleton()
    ensure_path(result, PREFERENCES_PATH, MACHINE)
    if machine_scope_only:
        ensure_path(result, REQUIREMENTS_PATH, MACHINE)
    return result


def load_scope_document(path: str) -> dict | None:
    """Read winget settings.json, skipping // comment lines. None if absent."""
    if not os.path.isfile(path):
        return None

    with open(path, 'r', encoding='utf-8-sig') as f:
        lines = [line for line in f if not line.lstrip().startswith('//')]
    text = ''.join(lines).strip()
    if not text:
        return None

    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object")
    return data


def write_scope_document(path: str, document: dict):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(document, f, indent=4)
        f.write('\n')


def update_scope_file(path: str, machine_scope_only: bool) -> bool:
    """Merge the scope entries into the file at path. Returns True if it was rewritten."""
    existing = load_scope_document(path)
    updated = apply_machine_scope(existing, machine_scope_only)
    if updated == existing:
        logger.info("Scope settings already up to date in %s", path)
        return False
    write_scope_document(path, updated)
    logger.info("Wrote machine scope preference (required=%s) to %s",
                machine_scope_only, path)
    return True
