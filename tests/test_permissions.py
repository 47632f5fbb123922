# tests/test_permissions.py
from app.core import permissions
from app.db.models import User, SupportTicket, TicketComment, Organization
from app.db.models.enums import SystemRole, OrganizationRole


def make_user(user_id: str, system_role: SystemRole = SystemRole.USER) -> User:
    return User(id=user_id, email=f"{user_id}@example.com", system_role=system_role)


def make_ticket(reporter: str = "reporter", assignee: str = None) -> SupportTicket:
    return SupportTicket(
        id="t1", subject="Broken", message="It broke", user_id=reporter, assignee_id=assignee, organization_id="org1"
    )


def test_system_role_predicates():
    admin = make_user("a", SystemRole.ADMIN)
    support = make_user("s", SystemRole.SUPPORT)
    user = make_user("u")

    assert permissions.is_system_admin(admin)
    assert not permissions.is_system_admin(support)
    assert permissions.is_system_staff(admin) and permissions.is_system_staff(support)
    assert not permissions.is_system_staff(user)
    assert not permissions.is_system_staff(None)


def test_membership_predicates():
    owner = make_user("o")
    org = Organization(id="org1", name="Acme", slug="acme", owner_id="o")

    assert permissions.is_owner(owner, org)
    assert not permissions.is_owner(make_user("x"), org)
    assert permissions.is_member(OrganizationRole.MEMBER)
    assert not permissions.is_member(None)
    assert permissions.is_admin_or_owner(OrganizationRole.OWNER)
    assert permissions.is_admin_or_owner(OrganizationRole.ADMIN)
    assert not permissions.is_admin_or_owner(OrganizationRole.MEMBER)


def test_ticket_visibility():
    ticket = make_ticket(reporter="r", assignee="as")

    assert permissions.can_view_ticket(make_user("r"), ticket, OrganizationRole.MEMBER)
    assert permissions.can_view_ticket(make_user("as"), ticket, None)
    assert permissions.can_view_ticket(make_user("adm"), ticket, OrganizationRole.ADMIN)
    assert permissions.can_view_ticket(make_user("s", SystemRole.SUPPORT), ticket, None)
    assert not permissions.can_view_ticket(make_user("colleague"), ticket, OrganizationRole.MEMBER)
    assert not permissions.can_view_ticket(make_user("outsider"), ticket, None)


def test_internal_comments_exclude_tenant_admins():
    ticket = make_ticket(reporter="r", assignee="as")
    internal = TicketComment(id="c1", message="note", is_internal=True, user_id="s", ticket_id="t1")
    public = TicketComment(id="c2", message="hi", is_internal=False, user_id="r", ticket_id="t1")
    tenant_admin = make_user("adm")

    assert not permissions.can_view_internal_comments(tenant_admin, ticket)
    assert not permissions.can_view_comment(tenant_admin, ticket, internal)
    assert permissions.can_view_comment(tenant_admin, ticket, public)
    assert permissions.can_view_comment(make_user("as"), ticket, internal)
    assert permissions.can_write_internal_comments(make_user("s", SystemRole.SUPPORT), ticket)
    assert not permissions.can_write_internal_comments(make_user("r"), ticket)


def test_comment_modification_and_ticket_deletion():
    comment = TicketComment(id="c1", message="hi", is_internal=False, user_id="r", ticket_id="t1")

    assert permissions.can_modify_comment(make_user("r"), comment)
    assert permissions.can_modify_comment(make_user("s", SystemRole.SUPPORT), comment)
    assert not permissions.can_modify_comment(make_user("other"), comment)

    assert permissions.can_delete_ticket(make_user("a", SystemRole.ADMIN), None)
    assert permissions.can_delete_ticket(make_user("o"), OrganizationRole.OWNER)
    assert not permissions.can_delete_ticket(make_user("s", SystemRole.SUPPORT), None)
    assert not permissions.can_delete_ticket(make_user("m"), OrganizationRole.MEMBER)
