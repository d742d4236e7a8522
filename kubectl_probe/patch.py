"""Two-way strategic merge patches for pod manifests.

Only the parts of the strategic merge patch format the probe relies on are
implemented: nested maps are diffed recursively, lists of named items (such as
containers) are merged by their merge key, and every other list is replaced
wholesale.
"""

from collections.abc import Mapping, Sequence
from typing import Any

POD_MERGE_KEYS: Mapping[str, str] = {
    "containers": "name",
    "initContainers": "name",
    "ephemeralContainers": "name",
    "env": "name",
    "imagePullSecrets": "name",
    "volumes": "name",
    "volumeMounts": "mountPath",
    "volumeDevices": "devicePath",
    "ports": "containerPort",
}


def create_two_way_merge_patch(
    original: Mapping[str, Any],
    modified: Mapping[str, Any],
    merge_keys: Mapping[str, str] = POD_MERGE_KEYS,
) -> dict[str, Any]:
    """Compute the patch that turns ``original`` into ``modified``.

    Args:
        original: Current serialized object
        modified: Desired serialized object
        merge_keys: List field names mapped to the key identifying their items

    Returns:
        Patch document containing only the changed fields; empty if the two
        objects are equal

    """
    return _diff_maps(original, modified, merge_keys)


def _diff_maps(
    original: Mapping[str, Any],
    modified: Mapping[str, Any],
    merge_keys: Mapping[str, str],
) -> dict[str, Any]:
    patch: dict[str, Any] = {}

    for key, value in modified.items():
        if key not in original:
            patch[key] = value
            continue

        old = original[key]
        if old == value:
            continue

        if isinstance(old, Mapping) and isinstance(value, Mapping):
            if nested := _diff_maps(old, value, merge_keys):
                patch[key] = nested
        elif (merge_key := merge_keys.get(key)) and (
            _is_keyed_list(old, merge_key) and _is_keyed_list(value, merge_key)
        ):
            patch.update(_diff_keyed_lists(key, old, value, merge_key, merge_keys))
        else:
            patch[key] = value

    for key in original:
        if key not in modified:
            patch[key] = None

    return patch


def _is_keyed_list(value: Any, merge_key: str) -> bool:
    if isinstance(value, str) or not isinstance(value, Sequence):
        return False
    return all(isinstance(item, Mapping) and merge_key in item for item in value)


def _diff_keyed_lists(
    key: str,
    original: Sequence[Mapping[str, Any]],
    modified: Sequence[Mapping[str, Any]],
    merge_key: str,
    merge_keys: Mapping[str, str],
) -> dict[str, Any]:
    originals = {item[merge_key]: item for item in original}
    modified_names = {item[merge_key] for item in modified}

    items: list[Mapping[str, Any]] = []
    for item in modified:
        name = item[merge_key]
        if name not in originals:
            items.append(item)
        elif originals[name] != item:
            items.append(
                {merge_key: name, **_diff_maps(originals[name], item, merge_keys)}
            )

    items.extend(
        {merge_key: name, "$patch": "delete"}
        for name in originals
        if name not in modified_names
    )

    if not items:
        return {}

    return {
        f"$setElementOrder/{key}": [{merge_key: item[merge_key]} for item in modified],
        key: items,
    }
