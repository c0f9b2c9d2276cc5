"""
Unit tests for meetread.services.user – admin user management and self-service profile.
"""
import pytest

from meetread.core.exceptions import ConflictError, NotFoundError
from meetread.core.security import verify_password
from meetread.db.models import BookStatus, UserRole
from meetread.services.borrow import approve_borrow_request, create_borrow_request, get_requests_for_owner
from meetread.services.user import (
    get_users,
    get_user_by_id,
    get_user_by_email,
    update_user,
    delete_user,
    update_profile,
    change_password,
)
from tests.unit.conftest import DEFAULT_PASSWORD, future


class TestGetUsers:
    @pytest.mark.asyncio
    async def test_list_all(self, db_session, make_user):
        db_session.add_all([make_user(), make_user(role=UserRole.ADMIN)])
        await db_session.flush()

        users = await get_users(db_session)
        assert len(users) == 2

    @pytest.mark.asyncio
    async def test_filter_by_role(self, db_session, make_user):
        db_session.add_all([make_user(), make_user(), make_user(role=UserRole.ADMIN)])
        await db_session.flush()

        admins = await get_users(db_session, role=UserRole.ADMIN)
        assert len(admins) == 1
        assert admins[0].role == UserRole.ADMIN

    @pytest.mark.asyncio
    async def test_lookup_by_email_ignores_case(self, db_session, make_user):
        db_session.add(make_user(email="budi@mail.com"))
        await db_session.flush()

        user = await get_user_by_email(db_session, "Budi@Mail.com")
        assert user is not None


class TestUpdateUser:
    @pytest.mark.asyncio
    async def test_update_name_and_role(self, db_session, make_user):
        user = make_user(name="Old")
        db_session.add(user)
        await db_session.flush()

        updated = await update_user(
            db_session, user.id, {"name": "New", "role": UserRole.ADMIN}, actor_id=1
        )
        assert updated.name == "New"
        assert updated.role == UserRole.ADMIN

    @pytest.mark.asyncio
    async def test_update_password_is_hashed(self, db_session, make_user):
        user = make_user()
        db_session.add(user)
        await db_session.flush()

        updated = await update_user(db_session, user.id, {"password": "brandnew123"}, actor_id=1)
        assert verify_password("brandnew123", updated.password_hash)

    @pytest.mark.asyncio
    async def test_update_email_is_lowercased(self, db_session, make_user):
        user = make_user()
        db_session.add(user)
        await db_session.flush()

        updated = await update_user(db_session, user.id, {"email": "Rina@Mail.com"}, actor_id=1)
        assert updated.email == "rina@mail.com"

    @pytest.mark.asyncio
    async def test_update_to_taken_email_conflicts(self, db_session, make_user):
        user = make_user()
        db_session.add_all([user, make_user(email="taken@mail.com")])
        await db_session.flush()

        with pytest.raises(ConflictError, match="already used"):
            await update_user(db_session, user.id, {"email": "taken@mail.com"}, actor_id=1)

    @pytest.mark.asyncio
    async def test_built_in_admin_cannot_be_demoted(self, db_session, make_user):
        admin = make_user(role=UserRole.ADMIN, is_built_in=True)
        db_session.add(admin)
        await db_session.flush()

        with pytest.raises(ValueError, match="cannot be demoted"):
            await update_user(db_session, admin.id, {"role": UserRole.USER}, actor_id=admin.id)

    @pytest.mark.asyncio
    async def test_update_not_found(self, db_session):
        with pytest.raises(NotFoundError, match="User not found"):
            await update_user(db_session, 99999, {"name": "Ghost"}, actor_id=1)


class TestDeleteUser:
    @pytest.mark.asyncio
    async def test_delete_success(self, db_session, make_user):
        user = make_user()
        db_session.add(user)
        await db_session.flush()

        await delete_user(db_session, user.id, actor_id=1)
        assert await get_user_by_id(db_session, user.id) is None

    @pytest.mark.asyncio
    async def test_delete_owner_keeps_books_without_owner(self, db_session, make_user, make_book):
        user = make_user()
        db_session.add(user)
        await db_session.flush()
        book = make_book(owner_id=user.id)
        db_session.add(book)
        await db_session.flush()

        await delete_user(db_session, user.id, actor_id=1)
        await db_session.refresh(book)
        assert book.owner_id is None

    @pytest.mark.asyncio
    async def test_built_in_admin_is_protected(self, db_session, make_user):
        admin = make_user(role=UserRole.ADMIN, is_built_in=True)
        db_session.add(admin)
        await db_session.flush()

        with pytest.raises(ValueError, match="built-in admin"):
            await delete_user(db_session, admin.id, actor_id=1)

    @pytest.mark.asyncio
    async def test_delete_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            await delete_user(db_session, 99999, actor_id=1)

    @pytest.mark.asyncio
    async def test_deleting_borrower_returns_the_book(self, db_session, lending_setup):
        owner, borrower, book = lending_setup
        borrow_request = await create_borrow_request(db_session, borrower, book.id)
        await approve_borrow_request(db_session, owner, borrow_request.id, future())

        await delete_user(db_session, borrower.id, actor_id=1)
        await db_session.refresh(book)
        assert book.status == BookStatus.AVAILABLE
        assert book.available_copies == book.total_copies
        assert book.borrower_id is None
        assert book.due_date is None
        assert await get_requests_for_owner(db_session, owner.id) == []

    @pytest.mark.asyncio
    async def test_deleting_requester_reopens_pending_book(self, db_session, lending_setup):
        owner, borrower, book = lending_setup
        await create_borrow_request(db_session, borrower, book.id)
        await db_session.refresh(book)
        assert book.status == BookStatus.PENDING

        await delete_user(db_session, borrower.id, actor_id=1)
        await db_session.refresh(book)
        assert book.status == BookStatus.AVAILABLE
        assert book.available_copies == 1


class TestProfile:
    @pytest.mark.asyncio
    async def test_update_profile_fields(self, db_session, make_user):
        user = make_user()
        db_session.add(user)
        await db_session.flush()

        updated = await update_profile(
            db_session,
            user,
            {"name": "Dewi", "phone_number": " 6289876543210 ", "profile_image": "https://img.example.org/a.png"},
        )
        assert updated.name == "Dewi"
        assert updated.phone_number == "6289876543210"
        assert updated.profile_image == "https://img.example.org/a.png"

    @pytest.mark.asyncio
    async def test_blank_values_clear_optional_fields(self, db_session, make_user):
        user = make_user()
        db_session.add(user)
        await db_session.flush()

        updated = await update_profile(db_session, user, {"phone_number": "", "profile_image": "  "})
        assert updated.phone_number is None
        assert updated.profile_image is None

    @pytest.mark.asyncio
    async def test_untouched_fields_are_kept(self, db_session, make_user):
        user = make_user(name="Tetap")
        db_session.add(user)
        await db_session.flush()

        updated = await update_profile(db_session, user, {"profile_image": "https://img.example.org/b.png"})
        assert updated.name == "Tetap"
        assert updated.phone_number == "6281234567890"

    @pytest.mark.asyncio
    async def test_profile_email_conflict(self, db_session, make_user):
        user = make_user()
        db_session.add_all([user, make_user(email="other@mail.com")])
        await db_session.flush()

        with pytest.raises(ConflictError):
            await update_profile(db_session, user, {"email": "other@mail.com"})

    @pytest.mark.asyncio
    async def test_change_password(self, db_session, make_user):
        user = make_user()
        db_session.add(user)
        await db_session.flush()

        await change_password(db_session, user, DEFAULT_PASSWORD, "anotherpass1")
        assert verify_password("anotherpass1", user.password_hash)

    @pytest.mark.asyncio
    async def test_change_password_wrong_current(self, db_session, make_user):
        user = make_user()
        db_session.add(user)
        await db_session.flush()

        with pytest.raises(ValueError, match="Current password is incorrect"):
            await change_password(db_session, user, "wrongpass1", "anotherpass1")
