"""Admin query vocabulary and decoding.

An admin query is a JSON object ``{"type": <tag>, "args": {...}}``. The tag
selects one of the closed set of variants below; ``bulk`` nests a list of
further queries.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union, get_args

import orjson
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from catalog_server.catalog.errors import DecodeError, InvalidJSON

PermissionType = Literal["insert", "select", "update", "delete"]


class _Args(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class QualifiedTable(_Args):
    """A table reference given either as ``"name"`` or ``{"schema", "name"}``."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    schema_name: str = Field(default="public", alias="schema")
    name: str

    @model_validator(mode="before")
    @classmethod
    def from_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"name": value}
        return value

    @property
    def key(self) -> Tuple[str, str]:
        return (self.schema_name, self.name)

    def __str__(self) -> str:
        return f"{self.schema_name}.{self.name}"


# ── relationships ───────────────────────────────────────────────────────────


class ManualConfiguration(_Args):
    remote_table: QualifiedTable
    column_mapping: Dict[str, str]


class ArrayForeignKey(_Args):
    table: QualifiedTable
    column: str


class _RelationshipUsing(_Args):
    manual_configuration: Optional[ManualConfiguration] = None

    @model_validator(mode="after")
    def exactly_one_method(self):
        methods = [
            value
            for value in (getattr(self, "foreign_key_constraint_on", None), self.manual_configuration)
            if value is not None
        ]
        if len(methods) != 1:
            raise ValueError(
                "exactly one of foreign_key_constraint_on, manual_configuration is expected"
            )
        return self


class ObjectRelationshipUsing(_RelationshipUsing):
    foreign_key_constraint_on: Optional[str] = None

    @property
    def remote_table(self) -> Optional[QualifiedTable]:
        # a column-based object relationship only names the local column;
        # its remote table comes from the foreign key on that column
        if self.manual_configuration is not None:
            return self.manual_configuration.remote_table
        return None


class ArrayRelationshipUsing(_RelationshipUsing):
    foreign_key_constraint_on: Optional[ArrayForeignKey] = None

    @property
    def remote_table(self) -> Optional[QualifiedTable]:
        if self.manual_configuration is not None:
            return self.manual_configuration.remote_table
        return self.foreign_key_constraint_on.table


class CreateObjectRelationshipArgs(_Args):
    table: QualifiedTable
    name: str
    using: ObjectRelationshipUsing
    comment: Optional[str] = None


class CreateArrayRelationshipArgs(_Args):
    table: QualifiedTable
    name: str
    using: ArrayRelationshipUsing
    comment: Optional[str] = None


class DropRelationshipArgs(_Args):
    table: QualifiedTable
    relationship: str
    cascade: bool = False


class SetRelationshipCommentArgs(_Args):
    table: QualifiedTable
    name: str
    comment: Optional[str] = None


# ── permissions ─────────────────────────────────────────────────────────────


class CreatePermissionArgs(_Args):
    table: QualifiedTable
    role: str
    permission: Dict[str, Any]
    comment: Optional[str] = None


class DropPermissionArgs(_Args):
    table: QualifiedTable
    role: str


class SetPermissionCommentArgs(_Args):
    table: QualifiedTable
    role: str
    type: PermissionType
    comment: Optional[str] = None


# ── tables, templates, sql ──────────────────────────────────────────────────


class UntrackTableArgs(_Args):
    table: QualifiedTable
    cascade: bool = False


class CreateQueryTemplateArgs(_Args):
    name: str
    template: Dict[str, Any]
    comment: Optional[str] = None

    @model_validator(mode="after")
    def template_has_type(self):
        kind = self.template.get("type")
        if kind not in ("select", "insert", "update", "delete", "count"):
            raise ValueError(
                'template must be {"type": "select"|"insert"|"update"|"delete"|"count", "args": ...}'
            )
        return self


class QueryTemplateNameArgs(_Args):
    name: str


class SetQueryTemplateCommentArgs(_Args):
    name: str
    comment: Optional[str] = None


class RunSqlArgs(_Args):
    sql: str


# ── query variants ──────────────────────────────────────────────────────────


class TrackTable(BaseModel):
    type: Literal["track_table", "add_existing_table_or_view"]
    args: QualifiedTable


class UntrackTable(BaseModel):
    type: Literal["untrack_table"]
    args: UntrackTableArgs


class CreateObjectRelationship(BaseModel):
    type: Literal["create_object_relationship"]
    args: CreateObjectRelationshipArgs


class CreateArrayRelationship(BaseModel):
    type: Literal["create_array_relationship"]
    args: CreateArrayRelationshipArgs


class DropRelationship(BaseModel):
    type: Literal["drop_relationship"]
    args: DropRelationshipArgs


class SetRelationshipComment(BaseModel):
    type: Literal["set_relationship_comment"]
    args: SetRelationshipCommentArgs


class CreatePermission(BaseModel):
    type: Literal[
        "create_insert_permission",
        "create_select_permission",
        "create_update_permission",
        "create_delete_permission",
    ]
    args: CreatePermissionArgs

    @property
    def perm_type(self) -> str:
        return self.type.split("_")[1]


class DropPermission(BaseModel):
    type: Literal[
        "drop_insert_permission",
        "drop_select_permission",
        "drop_update_permission",
        "drop_delete_permission",
    ]
    args: DropPermissionArgs

    @property
    def perm_type(self) -> str:
        return self.type.split("_")[1]


class SetPermissionComment(BaseModel):
    type: Literal["set_permission_comment"]
    args: SetPermissionCommentArgs


class CreateQueryTemplate(BaseModel):
    type: Literal["create_query_template"]
    args: CreateQueryTemplateArgs


class DropQueryTemplate(BaseModel):
    type: Literal["drop_query_template"]
    args: QueryTemplateNameArgs


class SetQueryTemplateComment(BaseModel):
    type: Literal["set_query_template_comment"]
    args: SetQueryTemplateCommentArgs


class RunSql(BaseModel):
    type: Literal["run_sql"]
    args: RunSqlArgs


class Bulk(BaseModel):
    type: Literal["bulk"]
    args: List["AdminQuery"]


AdminQuery = Annotated[
    Union[
        TrackTable,
        UntrackTable,
        CreateObjectRelationship,
        CreateArrayRelationship,
        DropRelationship,
        SetRelationshipComment,
        CreatePermission,
        DropPermission,
        SetPermissionComment,
        CreateQueryTemplate,
        DropQueryTemplate,
        SetQueryTemplateComment,
        RunSql,
        Bulk,
    ],
    Field(discriminator="type"),
]

Bulk.model_rebuild()

_ADAPTER: TypeAdapter = TypeAdapter(AdminQuery)

QUERY_TYPES = frozenset(
    tag
    for model in get_args(get_args(AdminQuery)[0])
    for tag in get_args(model.model_fields["type"].annotation)
)


def _describe_failure(value: Any, exc: ValidationError) -> str:
    if not isinstance(value, dict):
        return f'expected an object with "type" and "args", got {type(value).__name__}'
    tag = value.get("type")
    if tag is None:
        return 'missing "type" in admin query'
    if not isinstance(tag, str) or tag not in QUERY_TYPES:
        return f'unknown admin query type "{tag}"'
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f'invalid "{tag}" query at {location}: {first["msg"]}'


def parse_admin_query(value: Any) -> AdminQuery:
    """Decode an already-parsed JSON value into an admin query variant."""
    try:
        return _ADAPTER.validate_python(value)
    except ValidationError as exc:
        raise DecodeError(
            _describe_failure(value, exc),
            details={
                "errors": exc.errors(include_url=False, include_context=False, include_input=False),
            },
        ) from exc


def decode_admin_query(raw: bytes) -> AdminQuery:
    """Parse raw request bytes into an admin query variant.

    Raises:
        InvalidJSON: If ``raw`` is not JSON.
        DecodeError: If the JSON is not a known admin query.
    """
    try:
        value = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise InvalidJSON(f"invalid json: {exc}") from exc
    return parse_admin_query(value)
