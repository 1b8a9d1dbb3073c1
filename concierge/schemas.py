"""Request payload schemas.

Every JSON body accepted by the API is parsed through one of these pydantic
models before anything touches the database. Wire names are camelCase, the
attribute names match the storage columns.
"""
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Literal, Optional
from urllib.parse import urlparse

from pydantic import (
    AnyUrl,
    BaseModel,
    BeforeValidator,
    AfterValidator,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError
from slugify import slugify
from typing_extensions import Annotated

from .errors import ValidationFailure
from .models import BANNER_VARIANTS, PAGE_STATUS_DRAFT, PAGE_STATUSES, REQUEST_STATUSES
from .rbac import ROLE_VIEWER
from .utils import is_valid_email

SLUG_PATTERN = r'^[a-z0-9-]+$'
SAFE_URL_SCHEMES = ('http', 'https')
_URL_ADAPTER = TypeAdapter(AnyUrl)


def _blank_to_none(value):
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _check_url(value):
    if value is None:
        return None
    try:
        _URL_ADAPTER.validate_python(value)
    except ValidationError:
        raise PydanticCustomError('url_parsing', 'Invalid URL')
    return value


def _check_safe_url(value):
    value = _check_url(value)
    if value is not None and urlparse(value).scheme.lower() not in SAFE_URL_SCHEMES:
        raise PydanticCustomError('url_protocol', 'Invalid URL protocol')
    return value


def _check_email(value):
    if value is not None and not is_valid_email(value):
        raise PydanticCustomError('email', 'Invalid email address')
    return value.lower() if value else value


def Text(min_length, max_length):
    return Annotated[str, StringConstraints(strip_whitespace=True, min_length=min_length, max_length=max_length)]


def OptionalText(max_length):
    return Annotated[
        Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=max_length)]],
        BeforeValidator(_blank_to_none),
    ]


def TextList(max_items, item_max_length=200):
    return Annotated[List[Text(1, item_max_length)], Field(min_length=1, max_length=max_items)]


Slug = Annotated[
    Optional[Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=120, pattern=SLUG_PATTERN)]],
    BeforeValidator(_blank_to_none),
]
Position = Optional[Annotated[int, Field(strict=True, ge=0, le=999)]]
Url = Annotated[OptionalText(500), AfterValidator(_check_url)]
SafeUrl = Annotated[OptionalText(200), AfterValidator(_check_safe_url)]
Email = Annotated[Text(3, 254), AfterValidator(_check_email)]
OptionalEmail = Annotated[OptionalText(254), AfterValidator(_check_email)]
Flag = Annotated[bool, Field(strict=True)]


class Payload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
    )


class ContentPayload(Payload):
    """Base for editable content. A missing slug is derived from ``slug_source``."""

    slug_source: ClassVar[Optional[str]] = None

    slug: Slug = None

    @model_validator(mode='after')
    def _derive_slug(self):
        if self.slug is None:
            source = getattr(self, self.slug_source, '') if self.slug_source else ''
            derived = slugify(source or '', max_length=120)
            if len(derived) < 2:
                raise PydanticCustomError('missing', 'Slug is required')
            self.slug = derived
        return self

    def storage_fields(self):
        return self.model_dump(by_alias=False)


class ServicePayload(ContentPayload):
    slug_source: ClassVar[Optional[str]] = 'title'

    title: Text(2, 200)
    description: Text(10, 600)
    items: TextList(20)
    position: Position = None


class DestinationPayload(ContentPayload):
    slug_source: ClassVar[Optional[str]] = 'name'

    name: Text(2, 200)
    headline: Text(2, 200)
    description: Text(10, 800)
    services: TextList(30)
    highlights: TextList(30)
    image_url: Url = None
    position: Position = None


class BannerPayload(ContentPayload):
    message: Text(4, 200)
    cta_label: OptionalText(80) = None
    cta_url: SafeUrl = None
    variant: Literal[BANNER_VARIANTS] = 'primary'
    active: Flag = True
    position: Position = None


class SectionPayload(ContentPayload):
    slug_source: ClassVar[Optional[str]] = 'title'

    title: Text(2, 200)
    body: Text(10, 1200)
    image_url: Url = None
    cta_label: OptionalText(80) = None
    cta_url: SafeUrl = None
    active: Flag = True
    position: Position = None


class PageBlock(Payload):
    id: Text(1, 120)
    type: Text(1, 60)
    data: Dict[str, Any] = Field(default_factory=dict)


class PagePayload(ContentPayload):
    slug_source: ClassVar[Optional[str]] = 'title'

    title: Text(2, 200)
    status: Literal[PAGE_STATUSES] = PAGE_STATUS_DRAFT
    blocks: Annotated[List[PageBlock], Field(max_length=200)] = Field(default_factory=list)


class PartnerPayload(ContentPayload):
    slug_source: ClassVar[Optional[str]] = 'name'

    name: Text(2, 200)
    category: OptionalText(100) = None
    description: OptionalText(600) = None
    logo_url: Url = None
    website_url: SafeUrl = None
    active: Flag = True
    position: Position = None


class TestimonialPayload(ContentPayload):
    slug_source: ClassVar[Optional[str]] = 'client_name'

    client_name: Text(2, 200)
    client_title: OptionalText(200) = None
    client_location: OptionalText(200) = None
    content: Text(10, 1200)
    rating: Annotated[int, Field(strict=True, ge=1, le=5)] = 5
    active: Flag = True
    position: Position = None


class TeamMemberPayload(ContentPayload):
    slug_source: ClassVar[Optional[str]] = 'name'

    name: Text(2, 200)
    title: Text(2, 200)
    bio: OptionalText(1200) = None
    image_url: Url = None
    linkedin_url: SafeUrl = None
    active: Flag = True
    position: Position = None


TokenGroup = Optional[Dict[str, Text(0, 200)]]


class ThemeTokens(Payload):
    colors: TokenGroup = None
    typography: TokenGroup = None
    spacing: TokenGroup = None
    radii: TokenGroup = None
    shadows: TokenGroup = None

    def to_document(self):
        return self.model_dump(exclude_none=True)


class ThemeUpdatePayload(Payload):
    tenant_id: Text(1, 80)
    tokens: ThemeTokens


class RoleUpdatePayload(Payload):
    role: Literal['admin', 'editor', 'viewer']


class UserCreatePayload(Payload):
    email: Email
    password: Annotated[str, StringConstraints(min_length=1, max_length=200)]
    full_name: OptionalText(200) = None
    role: Literal['admin', 'editor', 'viewer'] = ROLE_VIEWER


class LoginPayload(Payload):
    email: Annotated[str, StringConstraints(strip_whitespace=True, to_lower=True, min_length=1, max_length=254)]
    password: Annotated[str, StringConstraints(min_length=1, max_length=200)]


class LicenseIssuePayload(Payload):
    tenant_id: OptionalText(80) = None
    plan: Text(1, 60)
    features: Annotated[List[Text(1, 80)], Field(max_length=50)] = Field(default_factory=list)
    expires_at: Optional[datetime] = None


class RequestUpdatePayload(Payload):
    status: Optional[Literal[REQUEST_STATUSES]] = None
    admin_notes: OptionalText(5000) = None

    @model_validator(mode='after')
    def _require_change(self):
        if not self.model_fields_set & {'status', 'admin_notes'}:
            raise PydanticCustomError('missing', 'Nothing to update')
        return self


class ContactPayload(Payload):
    name: Text(2, 200)
    email: Email
    phone: OptionalText(50) = None
    nationality: OptionalText(100) = None
    service_interest: OptionalText(200) = None
    preferred_language: OptionalText(50) = None
    message: Text(2, 5000)
    referrer: OptionalText(500) = None
    utm_source: OptionalText(120) = None
    utm_medium: OptionalText(120) = None
    utm_campaign: OptionalText(120) = None


class ChatSessionPayload(Payload):
    visitor_id: Text(8, 120)
    visitor_name: OptionalText(200) = Field(default=None, validation_alias='name')
    visitor_email: OptionalEmail = Field(default=None, validation_alias='email')
    visitor_phone: OptionalText(50) = Field(default=None, validation_alias='phone')
    page_url: OptionalText(500) = None

    @model_validator(mode='before')
    @classmethod
    def _accept_prefixed_names(cls, data):
        # Widgets send either {name, email, phone} or {visitorName, visitorEmail, visitorPhone}.
        if isinstance(data, dict):
            data = dict(data)
            for short, long in (('name', 'visitorName'), ('email', 'visitorEmail'), ('phone', 'visitorPhone')):
                if short not in data and long in data:
                    data[short] = data[long]
        return data


class ChatMessagePayload(Payload):
    session_id: Annotated[int, Field(strict=False, ge=1)]
    visitor_id: Text(8, 120)
    message: Text(1, 2000)
    sender_name: OptionalText(200) = None


class ChatReplyPayload(Payload):
    message: Text(1, 2000)
    sender_name: OptionalText(200) = None


def _format_error(error):
    location = '.'.join(str(part) for part in error.get('loc', ()) if part != '__root__')
    message = error.get('msg') or 'Invalid request'
    if message.startswith('Value error, '):
        message = message[len('Value error, '):]
    return f'{location}: {message}' if location else message


def validate_payload(schema, data):
    """Parse ``data`` with ``schema`` or raise :class:`ValidationFailure` with the first error."""
    if not isinstance(data, dict):
        raise ValidationFailure('Request body must be a JSON object.')
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        errors = exc.errors()
        raise ValidationFailure(_format_error(errors[0]) if errors else 'Invalid request')
