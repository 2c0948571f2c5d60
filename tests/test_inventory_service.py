"""
Unit tests for the stock mutation engine, stock history and low-stock listing.
"""
import threading
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from catalog.config import settings
from catalog.database import Base
from catalog.exceptions import ConflictError, InvalidArgumentError, NotFoundError, StorageError
from catalog.models.product import Product
from catalog.models.stock_history import MutationType, StockHistory
from catalog.services import inventory_service
from catalog.services.category_service import CategoryRefState
from catalog.services.inventory_service import apply_stock_change, compute_stock_change


def ledger(db, product_id):
    return db.query(StockHistory).filter(StockHistory.product_id == product_id).all()


class TestComputeStockChange:
    """Pure mutation policies."""

    @pytest.mark.parametrize("previous, quantity", [(0, 0), (0, 7), (20, 5), (999, 1)])
    def test_add(self, previous, quantity):
        assert compute_stock_change(previous, MutationType.ADD, quantity) == (previous + quantity, quantity)

    @pytest.mark.parametrize("previous, quantity, expected", [
        (10, 4, (6, -4)),
        (10, 10, (0, -10)),
        (3, 10, (0, -3)),
        (0, 5, (0, 0)),
    ])
    def test_subtract_clamps_at_zero(self, previous, quantity, expected):
        new_stock, change = compute_stock_change(previous, MutationType.SUBTRACT, quantity)

        assert (new_stock, change) == expected
        assert change >= -previous

    @pytest.mark.parametrize("previous, quantity", [(8, 8), (8, 0), (0, 25), (40, 12)])
    def test_set(self, previous, quantity):
        assert compute_stock_change(previous, MutationType.SET, quantity) == (quantity, quantity - previous)


class TestApplyStockChange:
    """Mutations against the database."""

    def test_add_scenario(self, db, make_product):
        """Stock 20, add 5."""
        product = make_product(stock=20)

        change = apply_stock_change(db, product.id, "add", 5)

        assert (change.previous_stock, change.new_stock, change.change_amount) == (20, 25, 5)
        db.refresh(product)
        assert product.stock == 25

    def test_subtract_more_than_available(self, db, make_product):
        """Stock 3, subtract 10: clamped, ledger records -3 not -10."""
        product = make_product(stock=3)

        change = apply_stock_change(db, product.id, "subtract", 10, reason="damaged")

        assert (change.previous_stock, change.new_stock, change.change_amount) == (3, 0, -3)
        entries = ledger(db, product.id)
        assert len(entries) == 1
        assert entries[0].change_amount == -3
        assert entries[0].reason == "damaged"
        assert entries[0].type == "subtract"

    def test_set_to_same_value_still_recorded(self, db, make_product):
        """Stock 8, set 8: zero change but one ledger entry."""
        product = make_product(stock=8)

        change = apply_stock_change(db, product.id, "set", 8)

        assert (change.previous_stock, change.new_stock, change.change_amount) == (8, 8, 0)
        assert len(ledger(db, product.id)) == 1

    def test_set_twice_second_change_is_zero(self, db, make_product):
        product = make_product(stock=2)

        first = apply_stock_change(db, product.id, "set", 15)
        second = apply_stock_change(db, product.id, "set", 15)

        assert first.change_amount == 13
        assert second.change_amount == 0
        assert second.previous_stock == 15

    def test_one_consistent_entry_per_mutation(self, db, make_product):
        product = make_product(stock=10)

        for mutation_type, quantity in [("add", 5), ("subtract", 20), ("set", 7), ("add", 0)]:
            apply_stock_change(db, product.id, mutation_type, quantity)

        entries = sorted(ledger(db, product.id), key=lambda e: e.id)
        assert len(entries) == 4
        for entry in entries:
            assert entry.new_stock - entry.previous_stock == entry.change_amount
            assert entry.new_stock >= 0
        # Each entry starts where the previous one ended
        for before, after in zip(entries, entries[1:]):
            assert after.previous_stock == before.new_stock
        db.refresh(product)
        assert product.stock == entries[-1].new_stock == 7

    def test_accepts_enum_member(self, db, make_product):
        product = make_product(stock=1)

        change = apply_stock_change(db, product.id, MutationType.ADD, 1)

        assert change.new_stock == 2

    def test_bumps_version(self, db, make_product):
        product = make_product(stock=1)
        version = product.version

        apply_stock_change(db, product.id, "add", 1)

        db.refresh(product)
        assert product.version == version + 1

    def test_unknown_product(self, db):
        """Missing product: NotFound and nothing written."""
        with pytest.raises(NotFoundError):
            apply_stock_change(db, "does-not-exist", "add", 5)

        assert db.query(StockHistory).count() == 0

    def test_unknown_type(self, db, make_product):
        """type="multiply" is rejected before anything is written."""
        product = make_product(stock=4)

        with pytest.raises(InvalidArgumentError, match="Invalid type"):
            apply_stock_change(db, product.id, "multiply", 2)

        assert ledger(db, product.id) == []
        db.refresh(product)
        assert product.stock == 4

    @pytest.mark.parametrize("product_id, mutation_type, quantity", [
        (None, "add", 1),
        ("", "add", 1),
        ("p1", None, 1),
        ("p1", "", 1),
        ("p1", "add", None),
    ])
    def test_missing_fields(self, db, product_id, mutation_type, quantity):
        with pytest.raises(InvalidArgumentError, match="Missing required fields"):
            apply_stock_change(db, product_id, mutation_type, quantity)

    @pytest.mark.parametrize("mutation_type", ["add", "subtract", "set"])
    def test_negative_quantity_rejected(self, db, make_product, mutation_type):
        product = make_product(stock=5)

        with pytest.raises(InvalidArgumentError, match="cannot be negative"):
            apply_stock_change(db, product.id, mutation_type, -3)

        assert ledger(db, product.id) == []

    def test_non_integer_quantity_rejected(self, db, make_product):
        product = make_product(stock=5)

        with pytest.raises(InvalidArgumentError, match="integer"):
            apply_stock_change(db, product.id, "add", 2.5)

    def test_quantity_above_maximum_rejected(self, db, make_product):
        product = make_product(stock=5)

        with pytest.raises(InvalidArgumentError, match="cannot exceed"):
            apply_stock_change(db, product.id, "set", 2**63)

        db.refresh(product)
        assert product.stock == 5
        assert ledger(db, product.id) == []

    def test_add_past_maximum_rejected(self, db, make_product):
        product = make_product(stock=settings.STOCK_MAX - 1)

        with pytest.raises(InvalidArgumentError, match="Stock cannot exceed"):
            apply_stock_change(db, product.id, "add", 2)

        db.refresh(product)
        assert product.stock == settings.STOCK_MAX - 1
        assert ledger(db, product.id) == []

        change = apply_stock_change(db, product.id, "add", 1)
        assert change.new_stock == settings.STOCK_MAX

    def test_storage_failure_leaves_state_unchanged(self, db, make_product):
        product = make_product(stock=12)
        failure = OperationalError("UPDATE products", {}, Exception("disk I/O error"))

        with patch.object(db, "commit", side_effect=failure):
            with pytest.raises(StorageError):
                apply_stock_change(db, product.id, "subtract", 2)

        db.refresh(product)
        assert product.stock == 12
        assert ledger(db, product.id) == []


class TestConcurrentMutation:
    """Lost updates on the same product are rejected, not silently applied."""

    def test_stale_version_rejected_by_database(self, session_factory, make_product):
        product = make_product(stock=10)
        first = session_factory()
        second = session_factory()
        try:
            stale = first.get(Product, product.id)
            assert stale.stock == 10

            apply_stock_change(second, product.id, "add", 5)

            stale.stock = 100
            with pytest.raises(StaleDataError):
                first.commit()
            first.rollback()
        finally:
            first.close()
            second.close()

    def test_interleaved_mutation_raises_conflict(self, db, session_factory, make_product):
        """A writer that read stock before another commit gets ConflictError."""
        product = make_product(stock=10)
        slow = session_factory()
        fast = session_factory()
        try:
            stale = slow.get(Product, product.id)
            assert stale.stock == 10

            apply_stock_change(fast, product.id, "subtract", 4)

            # Simulate the slow request having read its row before the fast commit
            with patch.object(inventory_service, "_lock_product", return_value=stale):
                with pytest.raises(ConflictError):
                    apply_stock_change(slow, product.id, "subtract", 4)
        finally:
            slow.close()
            fast.close()

        db.refresh(product)
        assert product.stock == 6
        entries = ledger(db, product.id)
        assert len(entries) == 1
        assert entries[0].previous_stock == 10

    def test_lock_reads_fresh_stock(self, db, session_factory, make_product):
        """Stock cached in a session's identity map is not reused."""
        product = make_product(stock=10)
        other = session_factory()
        try:
            apply_stock_change(other, product.id, "set", 3)
        finally:
            other.close()

        change = apply_stock_change(db, product.id, "add", 1)

        assert change.previous_stock == 3
        assert change.new_stock == 4

    def test_parallel_adds_stay_consistent(self, tmp_path):
        """Every successful add is reflected once in stock and once in the ledger."""
        engine = create_engine(
            f"sqlite:///{tmp_path / 'stock.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        with factory() as setup:
            product = Product(name="Bolt", description="Bolt description", price=0.5, stock=0)
            setup.add(product)
            setup.commit()
            product_id = product.id

        workers = 20
        barrier = threading.Barrier(workers)
        results = []
        results_lock = threading.Lock()

        def worker():
            with factory() as session:
                barrier.wait()
                try:
                    outcome = apply_stock_change(session, product_id, "add", 1)
                except (ConflictError, StorageError) as e:
                    outcome = e
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        try:
            assert len(results) == workers
            successes = [r for r in results if not isinstance(r, Exception)]
            assert successes

            with factory() as check:
                stock = check.get(Product, product_id).stock
                entries = ledger(check, product_id)
            assert stock == len(successes)
            assert len(entries) == len(successes)
            assert sorted(e.previous_stock for e in entries) == list(range(len(successes)))
            assert sorted(c.previous_stock for c in successes) == list(range(len(successes)))
        finally:
            engine.dispose()


class TestStockHistory:
    """History query ordering and bounds."""

    def test_newest_first(self, db, make_product):
        product = make_product(stock=0)
        for quantity in (1, 2, 3, 4):
            apply_stock_change(db, product.id, "add", quantity)

        history = inventory_service.get_stock_history(db, product.id)

        assert [h.new_stock for h in history] == [10, 6, 3, 1]
        stamps = [h.created_at for h in history]
        assert stamps == sorted(stamps, reverse=True)

    def test_ties_broken_by_insertion_order(self, db, make_product):
        product = make_product(stock=0)
        stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
        for new_stock in (1, 2, 3):
            db.add(StockHistory(
                product_id=product.id,
                previous_stock=new_stock - 1,
                new_stock=new_stock,
                change_amount=1,
                type="add",
                created_at=stamp,
            ))
        db.commit()

        history = inventory_service.get_stock_history(db, product.id)

        assert [h.new_stock for h in history] == [3, 2, 1]

    def test_limit(self, db, make_product):
        product = make_product(stock=0)
        for _ in range(6):
            apply_stock_change(db, product.id, "add", 1)

        history = inventory_service.get_stock_history(db, product.id, limit=3)

        assert [h.new_stock for h in history] == [6, 5, 4]

    def test_only_requested_product(self, db, make_product):
        a = make_product(stock=1, name="A")
        b = make_product(stock=1, name="B")
        apply_stock_change(db, a.id, "add", 1)
        apply_stock_change(db, b.id, "add", 2)

        history = inventory_service.get_stock_history(db, a.id)

        assert len(history) == 1
        assert history[0].product_id == a.id

    def test_unknown_product_is_empty(self, db):
        assert inventory_service.get_stock_history(db, "nope") == []

    def test_history_survives_product_deletion(self, db, make_product):
        product = make_product(stock=5)
        product_id = product.id
        apply_stock_change(db, product_id, "add", 1)
        db.delete(product)
        db.commit()

        assert len(inventory_service.get_stock_history(db, product_id)) == 1


class TestLowStock:
    """Low-stock projection."""

    def test_strictly_below_threshold(self, db, make_product):
        """Stock 9 is low at threshold 10, stock 10 is not."""
        low = make_product(stock=9, name="Low")
        make_product(stock=10, name="Exact")
        make_product(stock=50, name="Plenty")

        items = inventory_service.get_low_stock_items(db, threshold=10)

        assert [item.product.id for item in items] == [low.id]
        assert items[0].threshold == 10

    def test_default_threshold(self, db, make_product):
        make_product(stock=5, name="Five")
        make_product(stock=10, name="Ten")

        items = inventory_service.get_low_stock_items(db)

        assert [item.product.name for item in items] == ["Five"]
        assert items[0].threshold == 10

    def test_reflects_latest_mutation(self, db, make_product):
        product = make_product(stock=30)
        assert inventory_service.get_low_stock_items(db) == []

        apply_stock_change(db, product.id, "subtract", 25)

        assert [item.product.id for item in inventory_service.get_low_stock_items(db)] == [product.id]

    def test_category_resolution(self, db, make_product, category):
        resolved = make_product(stock=1, name="Resolved", category_id=category.id)
        dangling = make_product(stock=2, name="Dangling", category_id="deleted-category")
        unset = make_product(stock=3, name="Unset")

        items = {item.product.id: item.category for item in inventory_service.get_low_stock_items(db)}

        assert len(items) == 3
        assert items[resolved.id].state is CategoryRefState.RESOLVED
        assert items[resolved.id].display_name == "Hardware"
        assert items[dangling.id].state is CategoryRefState.UNRESOLVED
        assert items[dangling.id].display_name == "Unknown"
        assert items[dangling.id].category_id == "deleted-category"
        assert items[unset.id].state is CategoryRefState.NOT_SET
        assert items[unset.id].display_name == "Uncategorized"
        assert items[unset.id].category_id is None
