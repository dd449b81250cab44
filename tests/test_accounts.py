import pytest
from sqlalchemy.exc import IntegrityError

from brimasouk import event_store
from brimasouk.accounts import commands, queries
from brimasouk.errors import ConflictError, NotFoundError, ValidationError

from conftest import as_current


async def test_register_normalizes_email_and_rejects_duplicates(session):
    agg = await commands.register_user(session, "Sami Trabelsi", "  Sami@Example.TN ")
    assert agg.email == "sami@example.tn"
    assert agg.role == "user"

    with pytest.raises(ConflictError):
        await commands.register_user(session, "Sami again", "sami@example.tn")
    with pytest.raises(ValidationError):
        await commands.register_user(session, "Boss", "boss@example.tn", role="admin")


async def test_artisan_approval_flow(session, admin):
    agg = await commands.register_user(
        session, "Hedi", "hedi@example.tn", role="artisan", artisan_description="Olive wood"
    )
    assert [u["id"] for u in await queries.list_pending_artisans(session)] == [agg.id]

    approved = await commands.approve_artisan(session, admin, agg.id)
    assert approved.is_approved
    assert approved.approved_by == admin.id
    assert await queries.list_pending_artisans(session) == []

    with pytest.raises(ConflictError):
        await commands.approve_artisan(session, admin, agg.id)


async def test_rejected_artisan_becomes_user(session, admin):
    agg = await commands.register_user(session, "Nour", "nour@example.tn", role="artisan")

    with pytest.raises(ValidationError):
        await commands.reject_artisan(session, admin, agg.id, "  ")

    rejected = await commands.reject_artisan(session, admin, agg.id, "Incomplete portfolio")
    assert rejected.role == "user"
    assert rejected.rejection_reason == "Incomplete portfolio"

    with pytest.raises(ConflictError):
        await commands.approve_artisan(session, admin, agg.id)


async def test_collaborator_application_flow(session, admin, customer):
    agg = await commands.apply_as_collaborator(
        session, customer, "designer", {"skills": ["branding"], "bio": "Graphic designer"}
    )
    assert agg.collaborator_role == "designer"
    assert not agg.collaborator_approved

    with pytest.raises(ConflictError):
        await commands.apply_as_collaborator(session, customer, "marketer", {})

    pending = await queries.list_pending_collaborators(session)
    assert [u["id"] for u in pending] == [customer.id]

    approved = await commands.approve_collaborator(session, admin, customer.id)
    assert approved.collaborator_approved
    assert approved.role == "collaborator"
    assert [u["id"] for u in await queries.list_collaborators(session, "designer")] == [customer.id]


async def test_invalid_collaborator_role(session, customer):
    with pytest.raises(ValidationError):
        await commands.apply_as_collaborator(session, customer, "astronaut", {})


async def test_user_history_is_versioned(session, admin, customer):
    await commands.apply_as_collaborator(session, customer, "marketer", {})
    await commands.reject_collaborator(session, admin, customer.id, "Not now")

    history = await event_store.load_events(session, customer.id)
    assert [e["event_type"] for e in history] == [
        "UserRegistered", "CollaboratorApplied", "CollaboratorRejected",
    ]
    assert [e["version"] for e in history] == [1, 2, 3]
    assert history[2]["event_data"]["reason"] == "Not now"


async def test_event_store_rejects_stale_version(session, customer):
    with pytest.raises(IntegrityError):
        await event_store.append_event(
            session, customer.id, "User", "ProfileTouched", {}, expected_version=0
        )
    await session.rollback()


async def test_apply_as_artisan_requires_region_and_phone(session, customer):
    with pytest.raises(ValidationError):
        await commands.apply_as_artisan(session, customer, "", "+21620000000")
    with pytest.raises(ValidationError):
        await commands.apply_as_artisan(session, customer, "Sfax", "")

    agg = await commands.apply_as_artisan(session, customer, "Sfax", "+21620000000", "Copper work")
    assert agg.role == "artisan"
    assert not agg.is_approved
    assert agg.phone_number == "+21620000000"
    assert [u["id"] for u in await queries.list_pending_artisans(session)] == [customer.id]

    history = await event_store.load_events(session, customer.id)
    assert history[-1]["event_type"] == "ArtisanApplied"


async def test_artisan_cannot_apply_twice(session, artisan):
    with pytest.raises(ConflictError):
        await commands.apply_as_artisan(session, artisan, "Sfax", "+21620000000")


async def test_rejected_artisan_can_reapply(session, admin):
    agg = await commands.register_user(session, "Nour", "nour@example.tn", role="artisan")
    await commands.reject_artisan(session, admin, agg.id, "Incomplete portfolio")

    user = as_current(await commands.load_user(session, agg.id))
    reapplied = await commands.apply_as_artisan(session, user, "Nabeul", "+21621111111")
    assert reapplied.role == "artisan"
    assert reapplied.rejection_reason is None

    approved = await commands.approve_artisan(session, admin, agg.id)
    assert approved.is_approved


async def test_artisan_directory_lists_only_approved(session, make_artisan):
    approved = await make_artisan()
    pending = await make_artisan(approved=False)

    directory = await queries.list_artisans(session)
    assert [a["id"] for a in directory["artisans"]] == [approved.id]
    assert directory["pagination"]["total"] == 1
    assert "email" not in directory["artisans"][0]
    assert (await queries.list_artisans(session, region="Tozeur"))["artisans"] == []

    assert (await queries.get_artisan(session, approved.id))["region"] == "Nabeul"
    with pytest.raises(NotFoundError):
        await queries.get_artisan(session, pending.id)
    with pytest.raises(NotFoundError):
        await queries.get_artisan(session, "missing")


async def test_global_history_is_newest_first(session, admin, customer):
    await commands.apply_as_collaborator(session, customer, "marketer", {})
    await commands.reject_collaborator(session, admin, customer.id, "Not now")

    recent = await event_store.load_all_events(session, "User")
    assert [e["event_type"] for e in recent[:2]] == ["CollaboratorRejected", "CollaboratorApplied"]
