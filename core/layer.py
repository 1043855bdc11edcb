"""
Layer access: schema, paginated download and edits.

A Layer is bound to one FeatureServer layer URL and one record class. Its
download methods are lazy generators; nothing is requested until iteration
starts, and a consumer that stops early triggers no further pages.

The general download path:
1. Query the first page and yield its records.
2. Stop unless keep_querying was requested and the page was non-empty.
3. Ask for every matching object id and drop the ones already yielded,
   keeping service order. This also covers services that cap a response
   below their declared maxRecordCount.
4. Fetch the remaining ids in batches of maxRecordCount (or the first page's
   size) on a thread pool of degree_of_parallelism workers, yielding batches
   in submission order whatever order they complete in.

A cancellation object (anything with is_set(), such as threading.Event)
stops new batches from being submitted, cancels queued ones and ends the
sequence. Records already yielded stay yielded.

Classes:
    Layer: Read access
    FeatureLayer: Read access plus edits
"""

from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import AsyncIterator, Dict, Iterable, Iterator, List, Optional, Sequence, Type

from config.config_loader import load_client_settings
from core import editor, rest_api
from core.feature import DynamicFeature, Feature
from core.mapper import to_feature
from core.predicate import to_where_clause
from core.rest_api import FeatureSet, LayerSchema, OIDSet, SpatialRel
from core.token import Token
from core.transport import AsyncTransport, get_default_transport
from geometry_engine.shapes import Geometry
from utils.logger import get_logger

logger = get_logger(__name__)


def _is_cancelled(cancellation) -> bool:
    return cancellation is not None and cancellation.is_set()


def _batches(object_ids: Sequence[int], size: int) -> List[List[int]]:
    size = max(1, int(size))
    return [list(object_ids[i:i + size]) for i in range(0, len(object_ids), size)]


def _log_first_page(first_page: FeatureSet, schema: LayerSchema):
    limit = ', transfer limit exceeded' if first_page.exceeded_transfer_limit else ''
    logger.info(f"First page returned {len(first_page.features)} record(s) from '{schema.name}'{limit}")


def _check_object_id_field(oid_set: OIDSet, schema: LayerSchema):
    if oid_set.object_id_field_name and oid_set.object_id_field_name != schema.object_id_field:
        logger.warning(f"'{schema.name}' reported object id field '{oid_set.object_id_field_name}', "
                       f"schema declares '{schema.object_id_field}'")


def _remaining_ids(all_ids: Iterable[int], already: Iterable[int]) -> List[int]:
    """Ids not yet seen, in service order, each once."""
    seen = set(already)
    remaining = []
    for oid in all_ids:
        if oid not in seen:
            seen.add(oid)
            remaining.append(oid)
    return remaining


class Layer:
    """
    Read access to a FeatureServer layer.

    Parameters:
    -----------
    url : str
        Layer URL, e.g. https://host/arcgis/rest/services/X/FeatureServer/0
    feature_type : Type[Feature]
        Record class produced by downloads (DynamicFeature by default)
    token : Optional[Union[str, Token]]
        Fixed token string or Token instance
    username, password : Optional[str]
        Credentials for a generated, auto-renewing token
    token_url : Optional[str]
        generateToken endpoint (defaults to the configured one)
    transport : Optional[Transport]
        Synchronous transport (process default if omitted)
    async_transport : Optional[AsyncTransport]
        Asynchronous transport (created on first async call if omitted)
    settings : Optional[Dict]
        Client settings (see config.config_loader.load_client_settings)
    """

    def __init__(
        self,
        url: str,
        feature_type: Type[Feature] = DynamicFeature,
        token=None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        token_url: Optional[str] = None,
        transport=None,
        async_transport: Optional[AsyncTransport] = None,
        settings: Optional[Dict] = None
    ):
        self.url = url.rstrip('/')
        self.feature_type = feature_type
        self.settings = settings if settings is not None else load_client_settings()
        self._transport = transport
        self._async_transport = async_transport
        self._owns_async_transport = False
        self._schema: Optional[LayerSchema] = None

        if isinstance(token, Token):
            self.token = token
        elif token:
            self.token = Token.fixed(token)
        elif username is not None and password is not None:
            authentication = self.settings['authentication']
            self.token = Token.from_credentials(
                token_url or authentication['token_url'],
                username,
                password,
                expiration=authentication['token_expiration_minutes'],
                transport=transport,
                async_transport=async_transport,
                settings=self.settings
            )
        else:
            self.token = None

    @property
    def transport(self):
        return self._transport or get_default_transport()

    @property
    def async_transport(self) -> AsyncTransport:
        if self._async_transport is None:
            self._async_transport = AsyncTransport(self.settings)
            self._owns_async_transport = True
        return self._async_transport

    async def aclose(self):
        """Close the asynchronous transport if this layer created it."""
        if self._owns_async_transport:
            await self._async_transport.aclose()
            self._async_transport = None
            self._owns_async_transport = False

    async def __aenter__(self) -> 'Layer':
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    def _token_value(self) -> Optional[str]:
        return self.token.value if self.token is not None else None

    async def _token_value_async(self) -> Optional[str]:
        return await self.token.get_value_async() if self.token is not None else None

    # -----------------------------------------------------------------------
    # Schema
    # -----------------------------------------------------------------------

    def get_schema(self, refresh: bool = False) -> LayerSchema:
        """Layer schema, fetched on first use and cached."""
        if self._schema is None or refresh:
            self._schema = rest_api.get_layer_schema(self.transport, self.url, self._token_value())
            logger.info(f"Loaded schema for '{self._schema.name}' ({len(self._schema.fields)} fields)")
        return self._schema

    async def get_schema_async(self, refresh: bool = False) -> LayerSchema:
        if self._schema is None or refresh:
            self._schema = await rest_api.get_layer_schema_async(
                self.async_transport, self.url, await self._token_value_async())
            logger.info(f"Loaded schema for '{self._schema.name}' ({len(self._schema.fields)} fields)")
        return self._schema

    # -----------------------------------------------------------------------
    # Query helpers
    # -----------------------------------------------------------------------

    def _query(self, schema: LayerSchema, where=None, geometry: Optional[Geometry] = None,
               spatial_rel=SpatialRel.INTERSECTS, extra_parameters=None) -> Dict:
        return {
            'where': to_where_clause(where, self.feature_type),
            'extra_parameters': extra_parameters,
            'geometry': geometry,
            'spatial_rel': spatial_rel if geometry is not None else None,
            'return_geometry': self.feature_type.has_geometry(),
            'return_z': schema.has_z,
        }

    def _decode(self, feature_set: FeatureSet, schema: LayerSchema) -> Iterator[Feature]:
        for graphic in feature_set.features:
            yield to_feature(graphic, schema, self.feature_type, feature_set.spatial_reference)

    def _fetch(self, query: Dict, object_ids: List[int]) -> FeatureSet:
        logger.debug(f"Fetching batch of {len(object_ids)} id(s) from {self.url}")
        return rest_api.query_features(self.transport, self.url, self._token_value(),
                                       object_ids=object_ids, **query)

    def _download_batches(
        self,
        schema: LayerSchema,
        query: Dict,
        batches: List[List[int]],
        degree_of_parallelism: Optional[int],
        cancellation
    ) -> Iterator[Feature]:
        if not batches:
            return

        if degree_of_parallelism is None:
            degree_of_parallelism = self.settings['pagination']['degree_of_parallelism']
        degree = max(1, degree_of_parallelism or 1)
        logger.info(f"Downloading {sum(len(b) for b in batches)} record(s) in {len(batches)} batch(es), "
                    f"parallelism {degree}")

        executor = ThreadPoolExecutor(max_workers=degree)
        pending = deque()
        remaining = iter(batches)

        def submit_next() -> bool:
            if _is_cancelled(cancellation):
                return False
            batch = next(remaining, None)
            if batch is None:
                return False
            pending.append(executor.submit(self._fetch, query, batch))
            return True

        try:
            while len(pending) < degree and submit_next():
                pass

            while pending:
                if _is_cancelled(cancellation):
                    logger.info("Download cancelled, remaining batches abandoned")
                    return

                feature_set = pending.popleft().result()
                submit_next()

                yield from self._decode(feature_set, schema)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    # -----------------------------------------------------------------------
    # Download
    # -----------------------------------------------------------------------

    def download_ids(
        self,
        object_ids: Iterable[int],
        degree_of_parallelism: Optional[int] = None,
        cancellation=None
    ) -> Iterator[Feature]:
        """
        Download exactly the given records, in batches of maxRecordCount.

        Parameters:
        -----------
        object_ids : Iterable[int]
            Object ids to fetch
        degree_of_parallelism : Optional[int]
            Maximum concurrent batch requests (default: the
            pagination.degree_of_parallelism setting)
        cancellation : Optional
            Object with is_set(); stops the download once set

        Yields:
        -------
        Feature
            Records in batch order
        """
        schema = self.get_schema()
        size = schema.max_record_count or self.settings['pagination']['default_page_size']
        query = self._query(schema)
        yield from self._download_batches(schema, query, _batches(list(object_ids), size),
                                          degree_of_parallelism, cancellation)

    def download(
        self,
        where=None,
        geometry: Optional[Geometry] = None,
        spatial_rel: SpatialRel = SpatialRel.INTERSECTS,
        extra_parameters=None,
        keep_querying: bool = False,
        degree_of_parallelism: Optional[int] = None,
        cancellation=None
    ) -> Iterator[Feature]:
        """
        Download records matching a filter.

        Parameters:
        -----------
        where : Optional[Union[str, Expression, Callable]]
            WHERE clause, predicate expression, or callable receiving the
            record class and returning one (all records if None)
        geometry : Optional[Geometry]
            Spatial filter
        spatial_rel : SpatialRel
            Relation for the spatial filter (default: intersects)
        extra_parameters : Optional[Union[str, Dict]]
            Additional query parameters
        keep_querying : bool
            Continue past the first page (default: False)
        degree_of_parallelism : Optional[int]
            Maximum concurrent batch requests after the first page (default:
            the pagination.degree_of_parallelism setting)
        cancellation : Optional
            Object with is_set(); stops the download once set

        Yields:
        -------
        Feature
            First-page records, then remaining records in batch order
        """
        schema = self.get_schema()
        query = self._query(schema, where, geometry, spatial_rel, extra_parameters)

        first_page = rest_api.query_features(self.transport, self.url, self._token_value(), **query)
        _log_first_page(first_page, schema)

        object_ids = []
        for feature in self._decode(first_page, schema):
            object_ids.append(feature.oid)
            yield feature

        if not keep_querying or not object_ids or _is_cancelled(cancellation):
            return

        id_query = {k: v for k, v in query.items() if k not in ('return_geometry', 'return_z')}
        oid_set = rest_api.query_object_ids(self.transport, self.url, self._token_value(), **id_query)
        _check_object_id_field(oid_set, schema)
        remaining = _remaining_ids(oid_set.object_ids, object_ids)

        size = schema.max_record_count or len(object_ids)
        yield from self._download_batches(schema, query, _batches(remaining, size),
                                          degree_of_parallelism, cancellation)

    # -----------------------------------------------------------------------
    # Async download
    # -----------------------------------------------------------------------

    async def _download_batches_async(
        self,
        schema: LayerSchema,
        query: Dict,
        batches: List[List[int]],
        cancellation
    ) -> AsyncIterator[Feature]:
        for batch in batches:
            if _is_cancelled(cancellation):
                logger.info("Download cancelled, remaining batches abandoned")
                return

            logger.debug(f"Fetching batch of {len(batch)} id(s) from {self.url}")
            feature_set = await rest_api.query_features_async(
                self.async_transport, self.url, await self._token_value_async(), object_ids=batch, **query)

            for feature in self._decode(feature_set, schema):
                yield feature

    async def download_ids_async(self, object_ids: Iterable[int], cancellation=None) -> AsyncIterator[Feature]:
        """Asynchronous download_ids; batches are fetched one at a time."""
        schema = await self.get_schema_async()
        size = schema.max_record_count or self.settings['pagination']['default_page_size']
        async for feature in self._download_batches_async(
                schema, self._query(schema), _batches(list(object_ids), size), cancellation):
            yield feature

    async def download_async(
        self,
        where=None,
        geometry: Optional[Geometry] = None,
        spatial_rel: SpatialRel = SpatialRel.INTERSECTS,
        extra_parameters=None,
        keep_querying: bool = False,
        cancellation=None
    ) -> AsyncIterator[Feature]:
        """Asynchronous download; same steps, batches fetched one at a time."""
        schema = await self.get_schema_async()
        query = self._query(schema, where, geometry, spatial_rel, extra_parameters)

        first_page = await rest_api.query_features_async(
            self.async_transport, self.url, await self._token_value_async(), **query)
        _log_first_page(first_page, schema)

        object_ids = []
        for feature in self._decode(first_page, schema):
            object_ids.append(feature.oid)
            yield feature

        if not keep_querying or not object_ids or _is_cancelled(cancellation):
            return

        id_query = {k: v for k, v in query.items() if k not in ('return_geometry', 'return_z')}
        oid_set = await rest_api.query_object_ids_async(
            self.async_transport, self.url, await self._token_value_async(), **id_query)
        _check_object_id_field(oid_set, schema)
        remaining = _remaining_ids(oid_set.object_ids, object_ids)

        size = schema.max_record_count or len(object_ids)
        async for feature in self._download_batches_async(schema, query, _batches(remaining, size), cancellation):
            yield feature


class FeatureLayer(Layer):
    """Layer that also accepts edits."""

    def insert(self, *features: Feature) -> 'editor.EditResult':
        return editor.apply_edits(self, adds=features)

    def update(self, *features: Feature) -> 'editor.EditResult':
        return editor.apply_edits(self, updates=features)

    def delete(self, *features: Feature) -> 'editor.EditResult':
        return editor.apply_edits(self, deletes=features)

    def delete_where(self, where) -> 'editor.EditResult':
        return editor.delete_where(self, where)

    def apply_edits(
        self,
        adds: Optional[Sequence[Feature]] = None,
        updates: Optional[Sequence[Feature]] = None,
        deletes: Optional[Sequence[Feature]] = None
    ) -> 'editor.EditResult':
        return editor.apply_edits(self, adds, updates, deletes)
