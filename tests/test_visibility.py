"""Visibility policy — pure filter, SQL predicate and the list/get views."""

from __future__ import annotations

import uuid
from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavetrack.auth.dependencies import Principal
from leavetrack.common.constants import LeaveStatus, UserRole, VisibilityMode
from leavetrack.common.exceptions import NotFoundException
from leavetrack.common.visibility import can_see, filter_visible
from leavetrack.employees.service import EmployeeService
from leavetrack.leave.models import LeaveRequest
from leavetrack.leave.service import LeaveService
from leavetrack.policy.schemas import PolicySettings
from tests.conftest import principal_for, seed_employee, seed_request

DEPT_A = uuid.uuid4()
DEPT_B = uuid.uuid4()


def _item(owner, dept):
    return SimpleNamespace(id=uuid.uuid4(), employee_id=owner, department_id=dept)


# ═════════════════════════════════════════════════════════════════════
# Pure rules
# ═════════════════════════════════════════════════════════════════════


class TestFilterVisible:

    def setup_method(self):
        self.me = Principal(user_id=uuid.uuid4(), department_id=DEPT_A)
        self.peer = uuid.uuid4()
        self.stranger = uuid.uuid4()
        self.mine = _item(self.me.user_id, DEPT_A)
        self.peers = _item(self.peer, DEPT_A)
        self.strangers = _item(self.stranger, DEPT_B)
        self.items = [self.mine, self.peers, self.strangers]

    def test_admin_only_shows_own(self):
        assert filter_visible(self.me, self.items, VisibilityMode.admin_only) == [self.mine]

    def test_department_only_shows_own_and_department(self):
        assert filter_visible(self.me, self.items, VisibilityMode.department_only) == [
            self.mine, self.peers,
        ]

    def test_all_see_all(self):
        assert filter_visible(self.me, self.items, VisibilityMode.all_see_all) == self.items

    @pytest.mark.parametrize("mode", list(VisibilityMode))
    def test_admin_sees_everything(self, mode):
        admin = Principal(user_id=uuid.uuid4(), role=UserRole.admin)
        assert filter_visible(admin, self.items, mode) == self.items

    def test_mode_accepts_raw_string(self):
        assert filter_visible(self.me, self.items, "department_only") == [self.mine, self.peers]

    def test_viewer_without_department(self):
        viewer = Principal(user_id=self.me.user_id)
        assert filter_visible(viewer, self.items, VisibilityMode.department_only) == [self.mine]

    def test_employee_rows_are_their_own_owner(self):
        employees = [
            SimpleNamespace(id=self.me.user_id, department_id=DEPT_A),
            SimpleNamespace(id=self.stranger, department_id=DEPT_B),
        ]
        assert filter_visible(self.me, employees, VisibilityMode.admin_only) == employees[:1]

    def test_can_see_unassigned_owner(self):
        assert not can_see(self.me, self.stranger, None, VisibilityMode.department_only)


class TestFilterLeaveRows:

    @pytest.fixture
    async def rows(self, db: AsyncSession, employee, colleague, outsider):
        own = await seed_request(db, employee, date(2025, 9, 1), date(2025, 9, 5))
        peer = await seed_request(db, colleague, date(2025, 9, 8), date(2025, 9, 9))
        other = await seed_request(db, outsider, date(2025, 9, 10), date(2025, 9, 10))
        return own, peer, other

    async def test_department_from_loaded_employee(self, db: AsyncSession, rows, employee):
        own, peer, _ = rows
        loaded = (await db.execute(
            select(LeaveRequest)
            .options(selectinload(LeaveRequest.employee))
            .order_by(LeaveRequest.start_date)
            .execution_options(populate_existing=True)
        )).scalars().all()

        visible = filter_visible(principal_for(employee), loaded, VisibilityMode.department_only)
        assert [r.id for r in visible] == [own.id, peer.id]

    async def test_department_from_owner_map(
        self, db: AsyncSession, rows, employee, colleague, outsider,
    ):
        own, peer, other = rows
        departments = {
            e.id: e.department_id for e in (employee, colleague, outsider)
        }
        visible = filter_visible(
            principal_for(employee), [own, peer, other], VisibilityMode.department_only,
            owner_departments=departments,
        )
        assert visible == [own, peer]

    async def test_pure_filter_matches_listing(self, db: AsyncSession, rows, employee):
        listed, _ = await LeaveService.list_requests(
            db, principal_for(employee),
            policy=PolicySettings(visibility_mode=VisibilityMode.department_only),
        )
        loaded = (await db.execute(
            select(LeaveRequest)
            .options(selectinload(LeaveRequest.employee))
            .execution_options(populate_existing=True)
        )).scalars().all()
        visible = filter_visible(principal_for(employee), loaded, VisibilityMode.department_only)
        assert {r.id for r in visible} == {r.id for r in listed}


# ═════════════════════════════════════════════════════════════════════
# Service views
# ═════════════════════════════════════════════════════════════════════


class TestVisibleRequests:

    @pytest.fixture
    async def world(self, db: AsyncSession, employee, colleague, outsider, admin):
        return {
            "own": await seed_request(db, employee, date(2025, 9, 1), date(2025, 9, 5)),
            "colleague": await seed_request(db, colleague, date(2025, 9, 8), date(2025, 9, 9)),
            "outsider": await seed_request(
                db, outsider, date(2025, 9, 10), date(2025, 9, 10), status=LeaveStatus.approved,
            ),
        }

    async def _ids(self, db, viewer, mode):
        rows, _ = await LeaveService.list_requests(
            db, principal_for(viewer), policy=PolicySettings(visibility_mode=mode),
        )
        return {r.id for r in rows}

    async def test_admin_only(self, db: AsyncSession, world, employee):
        assert await self._ids(db, employee, VisibilityMode.admin_only) == {world["own"].id}

    async def test_department_only(self, db: AsyncSession, world, employee):
        assert await self._ids(db, employee, VisibilityMode.department_only) == {
            world["own"].id, world["colleague"].id,
        }

    async def test_all_see_all(self, db: AsyncSession, world, employee):
        assert await self._ids(db, employee, VisibilityMode.all_see_all) == {
            r.id for r in world.values()
        }

    async def test_admin_sees_all_in_strictest_mode(self, db: AsyncSession, world, admin):
        assert await self._ids(db, admin, VisibilityMode.admin_only) == {r.id for r in world.values()}

    async def test_list_filters_and_order(self, db: AsyncSession, world, admin):
        rows, meta = await LeaveService.list_requests(
            db, principal_for(admin), policy=PolicySettings(), status=LeaveStatus.pending,
        )
        assert [r.id for r in rows] == [world["colleague"].id, world["own"].id]
        assert meta.total == 2

        rows, _ = await LeaveService.list_requests(
            db, principal_for(admin), policy=PolicySettings(),
            from_date=date(2025, 9, 5), to_date=date(2025, 9, 8),
        )
        assert {r.id for r in rows} == {world["own"].id, world["colleague"].id}

    async def test_list_reports_department(self, db: AsyncSession, world, employee):
        rows, _ = await LeaveService.list_requests(
            db, principal_for(employee), policy=PolicySettings(),
        )
        assert rows[0].department_id == employee.department_id

    async def test_pagination(self, db: AsyncSession, world, admin):
        rows, meta = await LeaveService.list_requests(
            db, principal_for(admin), policy=PolicySettings(), page=2, page_size=2,
        )
        assert len(rows) == 1
        assert meta.total == 3
        assert meta.total_pages == 2
        assert meta.has_prev and not meta.has_next

    async def test_invisible_request_reads_as_not_found(self, db: AsyncSession, world, employee):
        with pytest.raises(NotFoundException):
            await LeaveService.get_request(
                db, principal_for(employee), world["outsider"].id, policy=PolicySettings(),
            )

    async def test_department_peer_visible(self, db: AsyncSession, world, employee):
        out = await LeaveService.get_request(
            db, principal_for(employee), world["colleague"].id,
            policy=PolicySettings(visibility_mode=VisibilityMode.department_only),
        )
        assert out.id == world["colleague"].id


class TestVisibleEmployees:

    async def test_employee_listing_follows_mode(self, db: AsyncSession, employee, colleague, outsider):
        viewer = principal_for(employee)
        own, _ = await EmployeeService.list_employees(db, viewer, VisibilityMode.admin_only)
        assert [e.id for e in own] == [employee.id]

        dept, _ = await EmployeeService.list_employees(db, viewer, VisibilityMode.department_only)
        assert {e.id for e in dept} == {employee.id, colleague.id}

        everyone, meta = await EmployeeService.list_employees(db, viewer, VisibilityMode.all_see_all)
        assert {e.id for e in everyone} == {employee.id, colleague.id, outsider.id}
        assert meta.total == 3

    async def test_employee_listing_filters(self, db: AsyncSession, admin, employee, sales):
        await seed_employee(db, name="Sam Sales", department_id=sales.id)
        rows, _ = await EmployeeService.list_employees(
            db, principal_for(admin), VisibilityMode.admin_only, department_id=sales.id,
        )
        assert [e.name for e in rows] == ["Sam Sales"]
