"""Registry of searchable models and their target indexes."""

from collections.abc import Awaitable, Callable
from typing import Any

import inflect
import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = structlog.get_logger()

DEFAULT_FIELDS: tuple[str, ...] = ("name", "title", "description")
DEFAULT_DOCUMENT_TYPE = "searchdocument"

# id and model must stay exact-match filterable whatever analysis other
# fields get.
DEFAULT_MAPPINGS: dict[str, Any] = {
    "properties": {
        "id": {"type": "keyword"},
        "model": {"type": "keyword"},
    }
}

Processor = Callable[[dict[str, Any]], dict[str, Any] | Awaitable[dict[str, Any]]]

_inflector = inflect.engine()


def pluralize(word: str) -> str:
    """Return the plural form of a model identity."""
    return _inflector.plural(word)


class IndexDescriptor(BaseModel):
    """A backend index that one or more searchable models write into.

    Attributes:
        identifier: Registration-level name ("" for the shared default).
        index_name: Name of the index in the search backend.
        document_type: Document type tag used in bulk actions and logs.
    """

    model_config = ConfigDict(frozen=True)

    identifier: str
    index_name: str
    document_type: str


def new_index_descriptor(identifier: str, default_index_name: str) -> IndexDescriptor:
    """Create the descriptor for a target index identifier.

    Args:
        identifier: Target index identifier, "" for the shared default.
        default_index_name: Backend index name of the shared default.

    Returns:
        Descriptor naming the backend index for the identifier.
    """
    if not identifier:
        return IndexDescriptor(
            identifier="",
            index_name=default_index_name,
            document_type=DEFAULT_DOCUMENT_TYPE,
        )
    return IndexDescriptor(
        identifier=identifier,
        index_name=identifier,
        document_type=f"{DEFAULT_DOCUMENT_TYPE}-{identifier}",
    )


class RegistrationOptions(BaseModel):
    """Options accepted when registering a searchable model.

    Attributes:
        fields: Fields searched by text queries; a single name is accepted.
        index: Target index identifier ("" selects the shared default).
        processor: Sync or async callable applied to each document before
            indexing.
        populate: Relation directive forwarded to the record store when
            hydrating search results.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    fields: list[str] = Field(default_factory=lambda: list(DEFAULT_FIELDS))
    index: str = ""
    processor: Processor | None = None
    populate: Any = None

    @field_validator("fields", mode="before")
    @classmethod
    def _wrap_single_field(cls, value: Any) -> Any:
        if value is None:
            return list(DEFAULT_FIELDS)
        if isinstance(value, str):
            return [value]
        return value


class SearchableRegistration(BaseModel):
    """Search configuration for one model identity.

    Attributes:
        model: Canonical (singular) model identity.
        fields: Ordered fields searched by text queries.
        index: Resolved target index descriptor.
        processor: Optional document processor.
        populate: Optional relation directive for result hydration.
        list_view: View name for search result listings.
        detail_view: View name for a single search result.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    model: str
    fields: tuple[str, ...]
    index: IndexDescriptor
    processor: Processor | None = None
    populate: Any = None
    list_view: str
    detail_view: str


class SearchRegistry:
    """Maps model identities (and their plurals) to registrations.

    The default index descriptor is created eagerly; named descriptors
    are created on first use and cached for the registry's lifetime.
    """

    def __init__(self, default_index_name: str = "searcher") -> None:
        """Initialize the registry.

        Args:
            default_index_name: Backend index name of the shared default.
        """
        self._default_index_name = default_index_name
        self._registrations: dict[str, SearchableRegistration] = {}
        self._indexes: dict[str, IndexDescriptor] = {}
        self.resolve_index("")

    @property
    def indexes(self) -> dict[str, IndexDescriptor]:
        """Resolved index descriptors keyed by identifier."""
        return dict(self._indexes)

    @property
    def models(self) -> list[str]:
        """Canonical identities of all registered models."""
        return sorted({r.model for r in self._registrations.values()})

    def resolve_index(self, identifier: str = "") -> IndexDescriptor:
        """Return the descriptor for an identifier, creating it if absent.

        Args:
            identifier: Target index identifier.

        Returns:
            The cached descriptor for the identifier.
        """
        descriptor = self._indexes.get(identifier)
        if descriptor is None:
            descriptor = new_index_descriptor(identifier, self._default_index_name)
            self._indexes[identifier] = descriptor
            logger.debug(
                "search_index_resolved",
                identifier=identifier,
                index_name=descriptor.index_name,
            )
        return descriptor

    def register(
        self,
        model: str,
        options: RegistrationOptions | dict[str, Any] | None = None,
    ) -> SearchableRegistration:
        """Register a model as searchable.

        The registration is stored under the identity and its plural.
        Registering the same identity again replaces its settings.

        Args:
            model: Model identity.
            options: Registration options.

        Returns:
            The stored registration.
        """
        if options is None:
            options = RegistrationOptions()
        elif not isinstance(options, RegistrationOptions):
            options = RegistrationOptions.model_validate(options)

        registration = SearchableRegistration(
            model=model,
            fields=tuple(options.fields),
            index=self.resolve_index(options.index),
            processor=options.processor,
            populate=options.populate,
            list_view=f"search-{model}-list",
            detail_view=f"search-{model}-detail",
        )
        self._registrations[model] = registration
        self._registrations[pluralize(model)] = registration
        logger.debug(
            "searchable_registered",
            model=model,
            fields=list(registration.fields),
            index=registration.index.index_name,
        )
        return registration

    def get(self, model: str) -> SearchableRegistration | None:
        """Look up a registration by identity or plural alias."""
        return self._registrations.get(model)

    def canonical(self, model: str) -> str | None:
        """Return the registered singular identity for a model name."""
        registration = self._registrations.get(model)
        return registration.model if registration else None

    def __contains__(self, model: object) -> bool:
        return model in self._registrations
