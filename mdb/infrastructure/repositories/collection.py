from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Type, Union
from contextlib import contextmanager

from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo import errors as mongo_errors
from pymongo.client_session import ClientSession
from pymongo.collection import Collection as MongoCollection

from mdb.domain.schemas.options import Options, UpdateOutcome, render_json
from mdb.infrastructure.database.mongodb.client import MongoDBClient
from mdb.utils.exceptions import (
    DuplicateKeyError,
    MissingQueryError,
    NoChangeError,
    NotFoundError,
)
from mdb.utils.logger import LoggerAdapter

Document = Dict[str, Any]
Result = Union[Document, BaseModel]


def is_replacement(update: Any) -> bool:
    """Tell whether an update document replaces the whole document."""
    return isinstance(update, Mapping) and not any(
        str(key).startswith("$") for key in update
    )


class Collection:
    """
    Handle on one registered collection.

    Every call acquires its own driver session, so a handle can be shared by
    concurrent callers. Filters, updates and results are plain documents;
    ``get``/``aggregate`` can parse results into a pydantic model instead.
    """

    def __init__(
        self,
        client: MongoDBClient,
        collection: MongoCollection,
        logger: Optional[LoggerAdapter] = None
    ):
        """
        Initialize the collection handle.

        Args:
            client: MongoDB client the collection belongs to
            collection: Driver collection
            logger: Logger carrying the collection context, None disables logging
        """
        self._client = client
        self._collection = collection
        self.logger = logger

    @property
    def name(self) -> str:
        return self._collection.name

    @contextmanager
    def _call(self, verb: str, fields: Dict[str, Any]) -> Iterator[ClientSession]:
        """Run one verb in its own session and trace it when logging is on."""
        error = None
        try:
            with self._client.session() as session:
                yield session
        except Exception as e:
            error = e
            if isinstance(e, mongo_errors.PyMongoError) and self.logger is not None:
                self.logger.error(f"{verb} failed: {str(e)}", extra={"data": {"error": str(e)}})
            raise
        finally:
            if self.logger is not None:
                data = dict(fields)
                data["error"] = str(error) if error is not None else None
                self.logger.debug(verb, extra={"data": data})

    @staticmethod
    def _parse(document: Document, model: Optional[Type[BaseModel]]) -> Result:
        if model is None:
            return document
        return model.model_validate(document)

    def create(self, document: Union[Mapping[str, Any], BaseModel]) -> Any:
        """
        Insert one document.

        Args:
            document: Document to insert, or a pydantic model to dump

        Returns:
            Id of the inserted document

        Raises:
            DuplicateKeyError: If the document violates a unique index
        """
        if isinstance(document, BaseModel):
            document = document.model_dump(by_alias=True)

        with self._call("Create", {"query": render_json(document)}) as session:
            try:
                result = self._collection.insert_one(document, session=session)
            except mongo_errors.DuplicateKeyError as e:
                raise DuplicateKeyError(collection=self.name) from e
            return result.inserted_id

    def get(
        self,
        options: Options,
        model: Optional[Type[BaseModel]] = None
    ) -> Union[Result, List[Result]]:
        """
        Fetch matching documents.

        Sorting applies only when ``options.do_sort`` is set. ``options.multi``
        returns every match; otherwise the first match is returned.

        Args:
            options: Filter, projection, pagination and sort
            model: Optional pydantic model each document is parsed into

        Returns:
            A list of documents when ``multi``, a single document otherwise

        Raises:
            MissingQueryError: If no filter is given
            NotFoundError: If the single-document form matches nothing
        """
        if options.find is None:
            raise MissingQueryError()

        sort = options.form_sort_query()
        with self._call("Get", options.log_fields("get")) as session:
            if options.multi:
                cursor = self._collection.find(
                    options.find,
                    projection=options.select,
                    skip=options.skip,
                    limit=options.limit,
                    sort=sort,
                    session=session
                )
                with cursor:
                    return [self._parse(doc, model) for doc in cursor]

            document = self._collection.find_one(
                options.find,
                projection=options.select,
                skip=options.skip,
                sort=sort,
                session=session
            )
            if document is None:
                raise NotFoundError(collection=self.name)
            return self._parse(document, model)

    def aggregate(
        self,
        options: Options,
        model: Optional[Type[BaseModel]] = None
    ) -> Union[Result, List[Result]]:
        """
        Run ``options.find`` as an aggregation pipeline.

        Sorting and pagination belong inside the pipeline and are not applied.

        Raises:
            MissingQueryError: If no pipeline is given
            NotFoundError: If the single-result form yields nothing
        """
        if options.find is None:
            raise MissingQueryError()

        with self._call("Aggregate", options.log_fields("aggregate")) as session:
            with self._collection.aggregate(options.find, session=session) as cursor:
                if options.multi:
                    return [self._parse(doc, model) for doc in cursor]
                document = next(cursor, None)

            if document is None:
                raise NotFoundError(collection=self.name)
            return self._parse(document, model)

    def update(self, options: Options) -> UpdateOutcome:
        """
        Update matching documents.

        With ``upsert`` one document is updated or inserted. With ``multi``
        every match is updated. Otherwise exactly one match is updated.
        Update documents without ``$`` operators replace the matched document
        (not allowed with ``multi``).

        Returns:
            INSERTED when an upsert inserted a new document, UPDATED when a
            document was modified, MATCHED when a single update matched a
            document that already had the values

        Raises:
            MissingQueryError: If the filter or update document is missing
            NoChangeError: If an upsert or multi update modified nothing
            NotFoundError: If a single update matched nothing
        """
        if options.find is None or options.update is None:
            raise MissingQueryError()

        replacement = is_replacement(options.update)
        with self._call("Update", options.log_fields("update")) as session:
            if options.upsert:
                if replacement:
                    result = self._collection.replace_one(
                        options.find, options.update, upsert=True, session=session
                    )
                else:
                    result = self._collection.update_one(
                        options.find, options.update, upsert=True, session=session
                    )
                if result.upserted_id is not None:
                    return UpdateOutcome.INSERTED
                if result.modified_count == 0:
                    raise NoChangeError(collection=self.name)
                return UpdateOutcome.UPDATED

            if options.multi:
                result = self._collection.update_many(options.find, options.update, session=session)
                if result.modified_count == 0:
                    raise NoChangeError(collection=self.name)
                return UpdateOutcome.UPDATED

            if replacement:
                result = self._collection.replace_one(options.find, options.update, session=session)
            else:
                result = self._collection.update_one(options.find, options.update, session=session)
            if result.matched_count == 0:
                raise NotFoundError(collection=self.name)
            return UpdateOutcome.UPDATED if result.modified_count else UpdateOutcome.MATCHED

    def remove(self, options: Options) -> int:
        """
        Remove matching documents.

        Returns:
            Number of removed documents

        Raises:
            MissingQueryError: If no filter is given
            NoChangeError: If a multi removal removed nothing
            NotFoundError: If a single removal matched nothing
        """
        if options.find is None:
            raise MissingQueryError()

        with self._call("Remove", options.log_fields("remove")) as session:
            if options.multi:
                result = self._collection.delete_many(options.find, session=session)
                if result.deleted_count == 0:
                    raise NoChangeError(collection=self.name)
                return result.deleted_count

            result = self._collection.delete_one(options.find, session=session)
            if result.deleted_count == 0:
                raise NotFoundError(collection=self.name)
            return result.deleted_count

    def count(self, options: Options) -> int:
        """Count documents matching ``options.find``, honouring skip and limit."""
        if options.find is None:
            raise MissingQueryError()

        kwargs = {}
        if options.skip:
            kwargs["skip"] = options.skip
        if options.limit:
            kwargs["limit"] = options.limit

        with self._call("Count", options.log_fields("count")) as session:
            return self._collection.count_documents(options.find, session=session, **kwargs)

    def iterate(self, options: Options, callback: Callable[[Document], Any]) -> int:
        """
        Stream matching documents through ``callback``.

        The first exception raised by ``callback`` stops the iteration and
        propagates.

        Returns:
            Number of documents handed to ``callback``
        """
        if options.find is None:
            raise MissingQueryError()

        processed = 0
        with self._call("Iterate", options.log_fields("iterate")) as session:
            cursor = self._collection.find(
                options.find,
                projection=options.select,
                skip=options.skip,
                limit=options.limit,
                sort=options.form_sort_query(),
                session=session
            )
            with cursor:
                for document in cursor:
                    try:
                        callback(document)
                    except Exception as e:
                        if self.logger is not None:
                            self.logger.error(
                                "Next iteration",
                                extra={"data": {"find": render_json(options.find), "error": str(e)}}
                            )
                        raise
                    processed += 1
        return processed

    def find_and_modify(self, options: Options, return_new: bool = False) -> Optional[Document]:
        """
        Atomically update the first match and return it.

        Args:
            options: Filter, update, projection, sort and upsert flag
            return_new: Return the document after the update instead of before

        Returns:
            The matched document, or None when an upsert inserted a document
            and ``return_new`` is off

        Raises:
            MissingQueryError: If the filter or update document is missing
            NotFoundError: If nothing matched and ``upsert`` is off
        """
        if options.find is None or options.update is None:
            raise MissingQueryError()

        return_document = ReturnDocument.AFTER if return_new else ReturnDocument.BEFORE
        with self._call("Find and modify", options.log_fields("find_and_modify")) as session:
            if is_replacement(options.update):
                document = self._collection.find_one_and_replace(
                    options.find,
                    options.update,
                    projection=options.select,
                    sort=options.form_sort_query(),
                    upsert=options.upsert,
                    return_document=return_document,
                    session=session
                )
            else:
                document = self._collection.find_one_and_update(
                    options.find,
                    options.update,
                    projection=options.select,
                    sort=options.form_sort_query(),
                    upsert=options.upsert,
                    return_document=return_document,
                    session=session
                )
            if document is None and not options.upsert:
                raise NotFoundError(collection=self.name)
            return document
