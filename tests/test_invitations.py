import pytest

from autocrm.core.errors import ConflictError, ForbiddenError
from autocrm.modules.invitations.schemas import InvitationAccept, InvitationCreate, InvitationListQuery
from autocrm.modules.invitations.service import InvitationService


def test_only_admins_invite(rpc, make_user, make_org):
    admin = make_user("admin")
    worker = make_user("worker")
    org = make_org(members={admin.id: "admin", worker.id: "worker"})
    payload = {"organization_id": org["id"], "email": "new@example.com", "role": "worker"}

    assert rpc("createInvitation", payload, user=worker).status_code == 403
    response = rpc("createInvitation", payload, user=admin)
    assert response.status_code == 200
    assert response.json()["result"]["data"]["email"] == "new@example.com"


def test_duplicate_pending_invitation_conflicts(db, make_user, make_org):
    admin = make_user("admin")
    org = make_org(members={admin.id: "admin"})
    service = InvitationService(db)
    service.create_invitation(admin.auth_user(db), InvitationCreate(organization_id=org["id"], email="New@Example.com"))
    with pytest.raises(ConflictError):
        service.create_invitation(admin.auth_user(db), InvitationCreate(organization_id=org["id"], email="new@example.com"))


def test_list_invitations_by_role(db, make_user, make_org):
    admin = make_user("admin")
    invitee = make_user("invitee")
    org = make_org(members={admin.id: "admin"})
    other = make_org("Other", members={admin.id: "admin"})
    service = InvitationService(db)
    service.create_invitation(admin.auth_user(db), InvitationCreate(organization_id=org["id"], email=invitee.email))
    service.create_invitation(admin.auth_user(db), InvitationCreate(organization_id=other["id"], email="someone@example.com"))

    for_org = service.list_invitations(admin.auth_user(db), InvitationListQuery(organization_id=org["id"]))
    assert [i["email"] for i in for_org] == [invitee.email]
    mine = service.list_invitations(invitee.auth_user(db), InvitationListQuery())
    assert [i["organization_id"] for i in mine] == [org["id"]]
    with pytest.raises(ForbiddenError):
        service.list_invitations(invitee.auth_user(db), InvitationListQuery(organization_id=org["id"]))


def test_accept_with_other_email_is_forbidden(rpc, db, make_user, make_org):
    admin = make_user("admin")
    intruder = make_user("intruder")
    org = make_org(members={admin.id: "admin"})
    invitation = db.seed("organization_invitations", organization_id=org["id"], email="invitee@example.com", role="worker")

    response = rpc("acceptInvitation", {"invitation_id": invitation["id"]}, user=intruder)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"
    assert intruder.auth_user(db).organizations == {}


def test_worker_accepting_gets_the_whole_organization(db, make_user, make_org):
    admin = make_user("admin")
    invitee = make_user("invitee")
    org = make_org(members={admin.id: "admin"})
    ticket = db.seed("tickets", organization_id=org["id"], created_by=admin.id, title="T")
    db.seed("ticket_comments", ticket_id=ticket["id"], user_id=admin.id, comment="hello")
    invitation = db.seed("organization_invitations", organization_id=org["id"], email=invitee.email, role="worker")

    user = invitee.auth_user(db)
    snapshot = InvitationService(db).accept_invitation(user, InvitationAccept(invitation_id=invitation["id"]))

    assert snapshot["organization"]["id"] == org["id"]
    assert user.organizations == {org["id"]: "worker"}
    assert {m["profile_id"] for m in snapshot["members"]} == {admin.id, invitee.id}
    assert {p["id"] for p in snapshot["profiles"]} == {admin.id, invitee.id}
    assert [t["id"] for t in snapshot["tickets"]] == [ticket["id"]]
    assert [c["comment"] for c in snapshot["comments"]] == ["hello"]
    # the used invitation is retired
    assert snapshot["invitations"] == []
    assert db.rows("organization_invitations")[0]["deleted_at"] is not None


def test_customer_accepting_only_gets_own_tickets(db, make_user, make_org):
    admin = make_user("admin")
    customer = make_user("customer")
    org = make_org(members={admin.id: "admin"})
    db.seed("tickets", organization_id=org["id"], created_by=admin.id, title="Internal")
    invitation = db.seed("organization_invitations", organization_id=org["id"], email=customer.email, role="customer")

    snapshot = InvitationService(db).accept_invitation(
        customer.auth_user(db), InvitationAccept(invitation_id=invitation["id"])
    )
    assert snapshot["tickets"] == []
    assert snapshot["comments"] == []
    assert "members" not in snapshot
    assert snapshot["member"]["role"] == "customer"
    assert snapshot["profile"]["id"] == customer.id


def test_accepting_twice_fails(db, make_user, make_org):
    admin = make_user("admin")
    invitee = make_user("invitee")
    org = make_org(members={admin.id: "admin", invitee.id: "member"})
    invitation = db.seed("organization_invitations", organization_id=org["id"], email=invitee.email, role="worker")
    with pytest.raises(ConflictError):
        InvitationService(db).accept_invitation(invitee.auth_user(db), InvitationAccept(invitation_id=invitation["id"]))
