from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import case, func

from .audit import log_audit
from .defaults import default_collection
from .errors import NotFound, ValidationFailure
from .models import (
    PAGE_STATUS_PUBLISHED,
    Banner,
    Destination,
    Page,
    PageVersion,
    Partner,
    Section,
    Service,
    TeamMember,
    Testimonial,
    commit_changes,
    db,
)
from .schemas import (
    BannerPayload,
    DestinationPayload,
    PagePayload,
    PartnerPayload,
    SectionPayload,
    ServicePayload,
    TeamMemberPayload,
    TestimonialPayload,
    validate_payload,
)
from .utils import isoformat

ORDER_BY_POSITION = 'position'
ORDER_BY_UPDATED = 'updated'


@dataclass(frozen=True)
class ContentResource:
    key: str
    model: type
    schema: type
    ordering: str = ORDER_BY_POSITION
    versioned: bool = False
    public_filter: Optional[Callable] = None

    @property
    def table(self):
        return self.model.__tablename__


def _only_active(model):
    return model.active.is_(True)


RESOURCES = {
    resource.key: resource
    for resource in (
        ContentResource('services', Service, ServicePayload),
        ContentResource('destinations', Destination, DestinationPayload),
        ContentResource('banners', Banner, BannerPayload, public_filter=_only_active),
        ContentResource('sections', Section, SectionPayload, public_filter=_only_active),
        ContentResource(
            'pages',
            Page,
            PagePayload,
            ordering=ORDER_BY_UPDATED,
            versioned=True,
            public_filter=lambda model: model.status == PAGE_STATUS_PUBLISHED,
        ),
        ContentResource('partners', Partner, PartnerPayload, public_filter=_only_active),
        ContentResource('testimonials', Testimonial, TestimonialPayload, public_filter=_only_active),
        ContentResource('team', TeamMember, TeamMemberPayload, public_filter=_only_active),
    )
}
PUBLIC_COLLECTIONS_WITH_DEFAULTS = ('services', 'destinations', 'banners', 'sections')


def get_resource(key):
    resource = RESOURCES.get(key)
    if resource is None:
        raise NotFound()
    return resource


def ordered_query(resource):
    model = resource.model
    if resource.ordering == ORDER_BY_UPDATED:
        return model.query.order_by(model.updated_at.desc(), model.id.desc())
    nulls_last = case((model.position.is_(None), 1), else_=0)
    return model.query.order_by(nulls_last, model.position.asc(), model.created_at.asc(), model.id.asc())


def serialize(resource, row):
    data = {'id': row.id}
    for name, field in resource.schema.model_fields.items():
        data[field.alias or name] = getattr(row, name)
    data['createdAt'] = isoformat(row.created_at)
    data['updatedAt'] = isoformat(row.updated_at)
    return data


def list_collection(resource):
    return [serialize(resource, row) for row in ordered_query(resource).all()]


def list_public_collection(resource):
    query = ordered_query(resource)
    if resource.public_filter is not None:
        query = query.filter(resource.public_filter(resource.model))
    return [serialize(resource, row) for row in query.all()]


def public_content():
    """Read model for the marketing site; empty core collections fall back to defaults."""
    content = {}
    for key, resource in RESOURCES.items():
        items = list_public_collection(resource)
        if not items and key in PUBLIC_COLLECTIONS_WITH_DEFAULTS:
            items = default_collection(key)
        content[key] = items
    return content


def _ensure_unique_slug(resource, slug, exclude_id=None):
    query = resource.model.query.filter(resource.model.slug == slug)
    if exclude_id is not None:
        query = query.filter(resource.model.id != exclude_id)
    if db.session.query(query.exists()).scalar():
        raise ValidationFailure('slug: Slug is already in use.')


def _append_page_version(page, actor):
    latest = db.session.query(func.max(PageVersion.version_number)).filter(PageVersion.page_id == page.id).scalar()
    version = PageVersion(
        page_id=page.id,
        version_number=(latest or 0) + 1,
        created_by_id=getattr(actor, 'user_id', None),
    )
    version.snapshot = {
        'slug': page.slug,
        'title': page.title,
        'status': page.status,
        'blocks': page.blocks,
    }
    db.session.add(version)
    return version


def create_entry(resource, data, actor):
    payload = validate_payload(resource.schema, data)
    _ensure_unique_slug(resource, payload.slug)
    row = resource.model(**payload.storage_fields())
    db.session.add(row)
    if resource.versioned:
        db.session.flush()
        _append_page_version(row, actor)
    commit_changes()
    log_audit(actor, 'content.create', resource.table, {'slug': row.slug})
    return list_collection(resource)


def update_entry(resource, entry_id, data, actor):
    payload = validate_payload(resource.schema, data)
    row = db.session.get(resource.model, entry_id)
    if row is None:
        raise NotFound()
    _ensure_unique_slug(resource, payload.slug, exclude_id=row.id)
    for name, value in payload.storage_fields().items():
        setattr(row, name, value)
    if resource.versioned:
        _append_page_version(row, actor)
    commit_changes()
    log_audit(actor, 'content.update', resource.table, {'id': entry_id})
    return list_collection(resource)


def delete_entry(resource, entry_id, actor):
    row = db.session.get(resource.model, entry_id)
    if row is not None:
        db.session.delete(row)
        commit_changes()
        log_audit(actor, 'content.delete', resource.table, {'id': entry_id})
    return list_collection(resource)


def list_page_versions(page_id):
    page = db.session.get(Page, page_id)
    if page is None:
        raise NotFound()
    return [
        {
            'id': version.id,
            'versionNumber': version.version_number,
            'snapshot': version.snapshot,
            'createdById': version.created_by_id,
            'createdAt': isoformat(version.created_at),
        }
        for version in page.versions
    ]
