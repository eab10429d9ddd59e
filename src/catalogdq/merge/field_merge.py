"""Fill-gaps field fusion.

The survivor's own non-empty values are never overwritten; a field is only
copied from the loser when it is empty or absent on the survivor.
"""

import copy
from typing import Any

from catalogdq.merge.models import MergeProvenance, MergeProvenanceField
from catalogdq.models import Record

__all__ = ["fuse_fields"]


def fuse_fields(survivor: Record, loser: Record) -> tuple[dict[str, Any], MergeProvenance]:
    """Compute the field changes that fill the survivor's gaps.

    Parameters
    ----------
    survivor : Record
        Record being kept.
    loser : Record
        Record being removed.

    Returns
    -------
    tuple[dict[str, Any], MergeProvenance]
        Changes to apply to the survivor and their provenance.

    Raises
    ------
    ValueError
        If the records belong to different entity types.
    """
    if survivor.entity_type != loser.entity_type:
        raise ValueError(
            f"cannot merge {survivor.entity_type} {survivor.id} with "
            f"{loser.entity_type} {loser.id}"
        )

    changes: dict[str, Any] = {}
    provenance = MergeProvenance()

    for descriptor in survivor.schema.mergeable_fields():
        name = descriptor.name
        if survivor.has_value(name) or not loser.has_value(name):
            continue
        changes[name] = copy.deepcopy(loser.get(name))
        provenance.fields[name] = MergeProvenanceField(from_record=loser.id, rule="fill_gap")

    return changes, provenance
