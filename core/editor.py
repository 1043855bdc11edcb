"""
Edit submission for feature layers.

Adds are serialized in full, updates as changed fields only (records with no
changes are skipped), deletes as object ids. After the service accepts the
batch, every update or delete whose item result reports success is marked
clean, and deleted records get oid -1. Items that failed keep their state.
A top-level service error raises RemoteError before any record is touched.

Classes:
    EditResult: Outcome of an edit batch

Functions:
    apply_edits: Submit adds, updates and deletes in one request
    delete_where: Delete every record matching a filter
"""

from typing import List, Optional, Sequence

from core import rest_api
from core.exceptions import PartialEditFailure
from core.feature import Feature
from core.mapper import to_graphic
from core.predicate import to_where_clause
from core.rest_api import EditResultSet
from utils.logger import get_logger

logger = get_logger(__name__)


class EditResult:
    """
    Outcome of an edit batch.

    Attributes:
        raw: EditResultSet returned by the service
    """

    def __init__(self, result_set: EditResultSet, layer):
        self.raw = result_set
        self._layer = layer
        self._inserted_features: Optional[List[Feature]] = None

    @property
    def success(self) -> bool:
        """True when the batch had no top-level error (items may still have failed)."""
        return self.raw.error is None

    @property
    def partial_failures(self) -> List[PartialEditFailure]:
        failures = []
        for operation, results in (('add', self.raw.add_results),
                                   ('update', self.raw.update_results),
                                   ('delete', self.raw.delete_results)):
            for index, item in enumerate(results):
                if not item.success:
                    error = item.error
                    failures.append(PartialEditFailure(
                        operation,
                        index,
                        item.object_id,
                        error.code if error else None,
                        error.message if error else None
                    ))
        return failures

    @property
    def inserted_features(self) -> List[Feature]:
        """Successfully added records, downloaded on first access."""
        if self._inserted_features is None:
            object_ids = [r.object_id for r in self.raw.add_results if r.success and r.object_id is not None]
            self._inserted_features = list(self._layer.download_ids(object_ids)) if object_ids else []
        return self._inserted_features


def _warn_capability(schema, supported: bool, operation: str):
    if not supported:
        logger.warning(f"'{schema.name}' does not advertise the {operation} capability")


def apply_edits(
    layer,
    adds: Optional[Sequence[Feature]] = None,
    updates: Optional[Sequence[Feature]] = None,
    deletes: Optional[Sequence[Feature]] = None
) -> EditResult:
    """
    Submit adds, updates and deletes to {layer.url}/applyEdits.

    Parameters:
    -----------
    layer : FeatureLayer
        Target layer
    adds, updates, deletes : Optional[Sequence[Feature]]
        Records to insert, update and delete

    Returns:
    --------
    EditResult
        Per-item outcome; inspect partial_failures for rejected items

    Raises:
    -------
    RemoteError
        If the service rejects the whole batch
    TransportError
        If the request fails (edits are never retried)
    """
    schema = layer.get_schema()

    add_payload = [to_graphic(f, schema, False) for f in adds or []]

    updated = []
    for feature in updates or []:
        graphic = to_graphic(feature, schema, True)
        if graphic is not None:
            updated.append((feature, graphic))

    deleted = list(deletes or [])

    if add_payload:
        _warn_capability(schema, schema.supports_create, 'Create')
    if updated:
        _warn_capability(schema, schema.supports_update, 'Update')
    if deleted:
        _warn_capability(schema, schema.supports_delete, 'Delete')

    if not add_payload and not updated and not deleted:
        logger.info("No edits to submit")
        return EditResult(EditResultSet(), layer)

    logger.info(f"Submitting edits to '{schema.name}': {len(add_payload)} add(s), "
                f"{len(updated)} update(s), {len(deleted)} delete(s)")

    result_set = rest_api.apply_edits(
        layer.transport,
        layer.url,
        layer._token_value(),
        adds=add_payload or None,
        updates=[g for _, g in updated] or None,
        deletes=[f.oid for f in deleted] or None
    )

    if result_set.error is None:
        for (feature, _), item in zip(updated, result_set.update_results):
            if item.success:
                feature.mark_clean()

        for feature, item in zip(deleted, result_set.delete_results):
            if item.success:
                feature.oid = -1
                feature.mark_clean()

    result = EditResult(result_set, layer)

    failures = result.partial_failures
    if failures:
        logger.warning(f"{len(failures)} edit item(s) failed on '{schema.name}'")

    return result


def delete_where(layer, where) -> EditResult:
    """
    Delete every record matching where (a clause or predicate expression).
    """
    schema = layer.get_schema()
    _warn_capability(schema, schema.supports_delete, 'Delete')

    clause = to_where_clause(where, layer.feature_type)
    logger.info(f"Deleting from '{schema.name}' where {clause}")

    result_set = rest_api.delete_features(layer.transport, layer.url, clause, layer._token_value())
    return EditResult(result_set, layer)
