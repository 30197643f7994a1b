from datetime import datetime

import pytest
from sqlalchemy import Integer, String
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base
from src.core.documents import allocate_next, get_document_number, max_existing_number, peek_sequence
from src.core.exceptions import InvalidScopeError


class LegacyPurchaseOrder(Base):
    """Document table whose numbers predate the sequence counter."""

    __tablename__ = "test_legacy_purchase_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    po_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)


async def add_legacy_orders(session: AsyncSession, *numbers: str) -> None:
    session.add_all([LegacyPurchaseOrder(po_number=number) for number in numbers])
    await session.flush()


class TestDocumentNumberGenerator:
    """Tests for document number generator."""

    async def test_generate_first_number(self, db_session: AsyncSession):
        """Test generating first document number."""
        number = await get_document_number(db_session, "INV", year=2026)
        assert number == "INV-2026-000001"

    async def test_generate_sequential_numbers(self, db_session: AsyncSession):
        """Test generating sequential document numbers."""
        num1 = await get_document_number(db_session, "INV", year=2026)
        num2 = await get_document_number(db_session, "INV", year=2026)
        num3 = await get_document_number(db_session, "INV", year=2026)

        assert num1 == "INV-2026-000001"
        assert num2 == "INV-2026-000002"
        assert num3 == "INV-2026-000003"

    async def test_different_prefixes(self, db_session: AsyncSession):
        """Test that different prefixes have independent sequences."""
        inv = await get_document_number(db_session, "INV", year=2026)
        po = await get_document_number(db_session, "PO", year=2026)
        inv2 = await get_document_number(db_session, "INV", year=2026)

        assert inv == "INV-2026-000001"
        assert po == "PO-2026-000001"
        assert inv2 == "INV-2026-000002"

    async def test_different_years(self, db_session: AsyncSession):
        """Test that different years have independent sequences."""
        num_2026 = await get_document_number(db_session, "INV", year=2026)
        num_2027 = await get_document_number(db_session, "INV", year=2027)
        num_2026_2 = await get_document_number(db_session, "INV", year=2026)

        assert num_2026 == "INV-2026-000001"
        assert num_2027 == "INV-2027-000001"
        assert num_2026_2 == "INV-2026-000002"

    async def test_default_year_is_current(self, db_session: AsyncSession):
        year = datetime.now().year
        number = await get_document_number(db_session, "GRN")
        assert number == f"GRN-{year}-000001"

    async def test_scope_is_prefix_and_year(self, db_session: AsyncSession):
        await get_document_number(db_session, "NC", year=2026)
        await get_document_number(db_session, "NC", year=2026)

        assert await peek_sequence(db_session, "NC:2026") == 2

    async def test_format_with_leading_zeros(self, db_session: AsyncSession):
        """Test that numbers are padded with leading zeros."""
        for _ in range(99):
            await get_document_number(db_session, "STU", year=2026)

        num_100 = await get_document_number(db_session, "STU", year=2026)
        assert num_100 == "STU-2026-000100"

    async def test_custom_width_grows_past_padding(self, db_session: AsyncSession):
        first = await get_document_number(db_session, "SR", year=2026, width=4)
        assert first == "SR-2026-0001"

        await get_document_number(db_session, "SR", year=2026, width=4)
        # Raise the counter past the padded width
        await allocate_next(db_session, "SR:2026", minimum_value=99998)
        assert await get_document_number(db_session, "SR", year=2026, width=4) == "SR-2026-100000"

    @pytest.mark.parametrize("prefix", ["", "PO-X", "P O", "PO\n", None])
    async def test_invalid_prefix(self, db_session: AsyncSession, prefix):
        with pytest.raises(InvalidScopeError) as exc_info:
            await get_document_number(db_session, prefix, year=2026)

        assert exc_info.value.details["field"] == "prefix"


class TestExistingNumbersFloor:
    """Numbers already present in a document table are never reissued."""

    async def test_max_existing_number(self, db_session: AsyncSession):
        await add_legacy_orders(
            db_session,
            "PO-2026-000041",
            "PO-2026-000007",
            "PO-2025-000999",
            "XPO-2026-000500",
        )

        assert await max_existing_number(db_session, LegacyPurchaseOrder.po_number, "PO-2026-") == 41
        assert await max_existing_number(db_session, LegacyPurchaseOrder.po_number, "PO-2025-") == 999

    async def test_max_existing_number_empty(self, db_session: AsyncSession):
        assert await max_existing_number(db_session, LegacyPurchaseOrder.po_number, "PO-2026-") == 0

    async def test_generate_continues_after_legacy_numbers(self, db_session: AsyncSession):
        await add_legacy_orders(db_session, "PO-2026-000041", "PO-2026-000007")

        number = await get_document_number(
            db_session, "PO", year=2026, existing=LegacyPurchaseOrder.po_number
        )
        assert number == "PO-2026-000042"

        # The counter remembers the floor, the legacy table is not needed any more
        assert await get_document_number(db_session, "PO", year=2026) == "PO-2026-000043"

    async def test_counter_ahead_of_legacy_numbers(self, db_session: AsyncSession):
        for _ in range(10):
            await get_document_number(db_session, "PO", year=2026)
        await add_legacy_orders(db_session, "PO-2026-000003")

        number = await get_document_number(
            db_session, "PO", year=2026, existing=LegacyPurchaseOrder.po_number
        )
        assert number == "PO-2026-000011"

    async def test_non_numeric_suffixes_are_skipped(self, db_session: AsyncSession):
        await add_legacy_orders(
            db_session,
            "PO-2026-000041",
            "PO-2026-000099-R",
            "PO-2026-00A1",
        )

        assert await max_existing_number(db_session, LegacyPurchaseOrder.po_number, "PO-2026-") == 41

        number = await get_document_number(
            db_session, "PO", year=2026, existing=LegacyPurchaseOrder.po_number
        )
        assert number == "PO-2026-000042"
