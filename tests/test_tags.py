import pytest

from autocrm.core.errors import BadRequestError, ForbiddenError
from autocrm.modules.tags.schemas import (
    EnumOptionCreate, TagKeyCreate, TagKeyListQuery, TicketTagRemove, TicketTagSet
)
from autocrm.modules.tags.service import TagService


@pytest.fixture
def setup(db, make_user, make_org):
    admin = make_user("admin")
    worker = make_user("worker")
    customer = make_user("customer")
    org = make_org(members={admin.id: "admin", worker.id: "worker", customer.id: "customer"})
    ticket = db.seed("tickets", organization_id=org["id"], created_by=customer.id, title="T")
    return TagService(db), org, ticket, admin, worker, customer


def _key(service, admin, db, org, name, tag_type):
    return service.create_tag_key(admin.auth_user(db), TagKeyCreate(organization_id=org["id"], name=name, tag_type=tag_type))


def test_only_admins_create_tag_keys(db, setup):
    service, org, ticket, admin, worker, customer = setup
    with pytest.raises(ForbiddenError):
        _key(service, worker, db, org, "Due", "date")
    assert _key(service, admin, db, org, "Due", "date")["tag_type"] == "date"


def test_enum_options_only_on_enum_keys(db, setup):
    service, org, ticket, admin, *_ = setup
    text_key = _key(service, admin, db, org, "Note", "text")
    with pytest.raises(BadRequestError):
        service.create_enum_option(admin.auth_user(db), EnumOptionCreate(tag_key_id=text_key["id"], value="x"))


def test_tag_keys_list_with_options(db, setup):
    service, org, ticket, admin, worker, _ = setup
    severity = _key(service, admin, db, org, "Severity", "enum")
    _key(service, admin, db, org, "Note", "text")
    service.create_enum_option(admin.auth_user(db), EnumOptionCreate(tag_key_id=severity["id"], value="S1"))

    keys = service.list_tag_keys(worker.auth_user(db), TagKeyListQuery(organization_id=org["id"]))
    assert [k["name"] for k in keys] == ["Severity", "Note"]
    assert [o["value"] for o in keys[0]["options"]] == ["S1"]
    assert "options" not in keys[1]


def test_set_tag_upserts_into_the_typed_table(db, setup):
    service, org, ticket, admin, worker, _ = setup
    effort = _key(service, admin, db, org, "Effort", "number")
    user = worker.auth_user(db)
    service.set_ticket_tag(user, TicketTagSet(ticket_id=ticket["id"], tag_key_id=effort["id"], value=3))
    updated = service.set_ticket_tag(user, TicketTagSet(ticket_id=ticket["id"], tag_key_id=effort["id"], value="5.5"))

    assert updated["value"] == 5.5
    assert len(db.rows("ticket_tag_number_values")) == 1
    tags = service.get_ticket_tags(user, ticket["id"])
    assert [v["value"] for v in tags["number"]] == [5.5]
    assert tags["text"] == [] and tags["date"] == [] and tags["enum"] == []


def test_date_tags_expect_iso_dates(db, setup):
    service, org, ticket, admin, worker, _ = setup
    due = _key(service, admin, db, org, "Due", "date")
    with pytest.raises(BadRequestError):
        service.set_ticket_tag(worker.auth_user(db), TicketTagSet(ticket_id=ticket["id"], tag_key_id=due["id"], value="next week"))
    row = service.set_ticket_tag(worker.auth_user(db), TicketTagSet(ticket_id=ticket["id"], tag_key_id=due["id"], value="2024-03-01"))
    assert row["value"] == "2024-03-01"


def test_enum_option_of_another_key_is_rejected(db, setup):
    service, org, ticket, admin, worker, _ = setup
    severity = _key(service, admin, db, org, "Severity", "enum")
    area = _key(service, admin, db, org, "Area", "enum")
    foreign = service.create_enum_option(admin.auth_user(db), EnumOptionCreate(tag_key_id=area["id"], value="Billing"))

    with pytest.raises(BadRequestError):
        service.set_ticket_tag(worker.auth_user(db), TicketTagSet(
            ticket_id=ticket["id"], tag_key_id=severity["id"], enum_option_id=foreign["id"]
        ))
    assert db.rows("ticket_tag_enum_values") == []


def test_enum_value_with_own_option(db, setup):
    service, org, ticket, admin, worker, _ = setup
    severity = _key(service, admin, db, org, "Severity", "enum")
    s1 = service.create_enum_option(admin.auth_user(db), EnumOptionCreate(tag_key_id=severity["id"], value="S1"))
    row = service.set_ticket_tag(worker.auth_user(db), TicketTagSet(
        ticket_id=ticket["id"], tag_key_id=severity["id"], enum_option_id=s1["id"]
    ))
    assert row["enum_option_id"] == s1["id"]
    assert row["tag_type"] == "enum"


def test_customers_cannot_write_tag_values(db, setup):
    service, org, ticket, admin, worker, customer = setup
    note = _key(service, admin, db, org, "Note", "text")
    with pytest.raises(ForbiddenError):
        service.set_ticket_tag(customer.auth_user(db), TicketTagSet(ticket_id=ticket["id"], tag_key_id=note["id"], value="hi"))
    # but may read the tags of their own ticket
    assert service.get_ticket_tags(customer.auth_user(db), ticket["id"])["text"] == []


def test_remove_tag_soft_deletes(rpc, db, setup):
    service, org, ticket, admin, worker, _ = setup
    note = _key(service, admin, db, org, "Note", "text")
    service.set_ticket_tag(worker.auth_user(db), TicketTagSet(ticket_id=ticket["id"], tag_key_id=note["id"], value="hi"))
    removed = service.remove_ticket_tag(worker.auth_user(db), TicketTagRemove(ticket_id=ticket["id"], tag_key_id=note["id"]))
    assert removed["deleted_at"] is not None

    response = rpc("getTicketTags", {"ticket_id": ticket["id"]}, user=worker, kind="query")
    assert response.json()["result"]["data"]["text"] == []


def test_values_of_deleted_tag_keys_are_hidden(db, setup):
    service, org, ticket, admin, worker, _ = setup
    note = _key(service, admin, db, org, "Note", "text")
    size = _key(service, admin, db, org, "Size", "number")
    user = worker.auth_user(db)
    service.set_ticket_tag(user, TicketTagSet(ticket_id=ticket["id"], tag_key_id=note["id"], value="keep"))
    service.set_ticket_tag(user, TicketTagSet(ticket_id=ticket["id"], tag_key_id=size["id"], value=2))
    service.delete_tag_key(admin.auth_user(db), size["id"])

    tags = service.get_ticket_tags(user, ticket["id"])
    assert [v["value"] for v in tags["text"]] == ["keep"]
    assert tags["number"] == []
