"""
test_memory_manager.py

Unit tests for MemoryManager: allocation, ownership rules and leak detection.
"""

import pytest
from memory_manager import MemoryManager
from memory_model import (
    ClassLayout,
    Discipline,
    EventKind,
    SimulatorConfig,
    StorageClass,
    render_config,
)


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def manager():
    """Create an empty memory manager."""
    return MemoryManager()


@pytest.fixture
def point_layout():
    """Create a closed Point layout (8 bytes)."""
    layout = ClassLayout("Point")
    layout.add_member("x", "int", 4)
    layout.add_member("y", "int", 4)
    layout.close()
    return layout


@pytest.fixture
def shared_pair(manager):
    """Two shared pointers owning one int; returns (p1, p2, heap)."""
    p1 = manager.create_pointer("p1", Discipline.SHARED, "int")
    heap = manager.allocate_heap("p1_data", 4, Discipline.SHARED)
    manager.assign_pointer(p1, heap, adopt=True)
    p2 = manager.copy_shared(p1, "p2")
    return p1, p2, heap


def event_kinds(manager):
    return [e.kind for e in manager.events]


# ============================================================
# Creation Tests
# ============================================================

class TestCreation:
    """Tests for stack and heap block creation."""

    def test_ids_start_at_one(self, manager):
        """Test that ids are handed out from 1 in creation order."""
        assert manager.create_stack_variable("a", 4) == 1
        assert manager.allocate_heap("b", 4) == 2
        assert manager.create_pointer("c") == 3

    def test_stack_variable(self, manager):
        """Test creating a plain stack variable."""
        block_id = manager.create_stack_variable("x", 4)
        block = manager.get_block(block_id)
        assert block.storage is StorageClass.STACK
        assert block.size == 4
        assert block.is_allocated
        assert manager.stack_depth == 1
        assert event_kinds(manager) == [EventKind.ALLOCATE]

    def test_stack_addresses_grow(self, manager):
        """Test that stack slots get increasing addresses."""
        a = manager.get_block(manager.create_stack_variable("a", 4))
        b = manager.get_block(manager.create_stack_variable("b", 4))
        assert b.address == a.address + manager.config.stack_slot_size
        assert (a.slot, b.slot) == (0, 1)

    def test_slot_not_reused_after_out_of_order_free(self, manager):
        """Test that freeing a stack block below the top keeps live slots unique."""
        x = manager.create_stack_variable("x", 4)
        r = manager.create_pointer("r", Discipline.RAW, "int")
        u = manager.create_pointer("u", Discipline.UNIQUE, "int")
        manager.assign_pointer(u, x)
        manager.end_scope()
        assert not manager.get_block(x).is_allocated
        assert manager.get_block(r).is_allocated
        assert manager.stack_depth == 1

        y = manager.get_block(manager.create_stack_variable("y", 4))
        live = manager.stack_blocks()
        assert len({b.slot for b in live}) == len(live)
        assert len({b.address for b in live}) == len(live)
        assert y.slot == manager.get_block(r).slot + 1

    def test_create_pointer_is_null(self, manager):
        """Test that a new pointer starts null."""
        block = manager.get_block(manager.create_pointer("p", Discipline.UNIQUE, "int"))
        assert block.is_pointer
        assert block.points_to is None
        assert block.pointer_type is Discipline.UNIQUE
        assert block.size == 8

    def test_allocate_heap_raw(self, manager):
        """Test raw heap allocation."""
        block = manager.get_block(manager.allocate_heap("int_heap", 4))
        assert block.storage is StorageClass.HEAP
        assert block.discipline is Discipline.RAW
        assert block.ref_count is None

    def test_allocate_heap_shared(self, manager):
        """Test that a shared allocation starts with one owner."""
        block = manager.get_block(manager.allocate_heap("data", 4, Discipline.SHARED))
        assert block.storage is StorageClass.SMART_HEAP
        assert block.ref_count == 1

    def test_allocate_heap_unique(self, manager):
        """Test that unique allocations carry no reference count."""
        block = manager.get_block(manager.allocate_heap("data", 4, Discipline.UNIQUE))
        assert block.storage is StorageClass.SMART_HEAP
        assert block.ref_count is None

    def test_create_class_object(self, manager, point_layout):
        """Test constructing a class instance on the stack."""
        block = manager.get_block(manager.create_class_object("p", point_layout))
        assert block.is_object
        assert block.size == 8
        assert block.class_name == "Point"
        assert event_kinds(manager) == [EventKind.CONSTRUCT]

    def test_create_class_object_without_layout(self, manager):
        """Test that a missing layout is rejected."""
        assert manager.create_class_object("p", None) is None
        assert manager.blocks == []

    def test_allocate_class_object_heap(self, manager, point_layout):
        """Test constructing a class instance on the heap."""
        block = manager.get_block(
            manager.allocate_class_object_heap("Point_heap", point_layout, Discipline.SHARED)
        )
        assert block.is_object
        assert block.is_heap
        assert block.ref_count == 1
        assert manager.allocate_class_object_heap("x", None) is None


# ============================================================
# Deallocation Tests
# ============================================================

class TestDeallocate:
    """Tests for deallocate()."""

    def test_deallocate_clears_pointers(self, manager):
        """Test that freeing a block nulls every pointer to it."""
        p1 = manager.create_pointer("p1", target_type="int")
        p2 = manager.create_pointer("p2", target_type="int")
        heap = manager.allocate_heap("int_heap", 4)
        manager.assign_pointer(p1, heap)
        manager.assign_pointer(p2, heap)

        assert manager.deallocate(heap)
        assert not manager.get_block(heap).is_allocated
        assert manager.get_block(p1).points_to is None
        assert manager.get_block(p2).points_to is None

    def test_double_free_rejected(self, manager):
        """Test that freeing a dead block fails."""
        heap = manager.allocate_heap("int_heap", 4)
        assert manager.deallocate(heap)
        assert not manager.deallocate(heap)

    def test_unknown_id_rejected(self, manager):
        """Test that an unknown id fails without effect."""
        assert not manager.deallocate(42)
        assert not manager.deallocate(None)
        assert manager.events == []

    def test_dead_block_stays_in_registry(self, manager):
        """Test that dead blocks remain queryable."""
        heap = manager.allocate_heap("int_heap", 4)
        manager.deallocate(heap)
        assert manager.get_block(heap) is not None
        assert manager.heap_blocks() == []

    def test_shared_with_two_owners(self, manager, shared_pair):
        """Test that a shared block with two owners only loses one."""
        _, _, heap = shared_pair
        assert manager.deallocate(heap)
        block = manager.get_block(heap)
        assert block.is_allocated
        assert block.ref_count == 1

    def test_deallocate_object_records_destruct(self, manager, point_layout):
        """Test that freeing a class instance records its destruction."""
        heap = manager.allocate_class_object_heap("Point_heap", point_layout)
        manager.deallocate(heap)
        assert event_kinds(manager)[-2:] == [EventKind.DEALLOCATE, EventKind.DESTRUCT]


# ============================================================
# Pointer assignment Tests
# ============================================================

class TestAssignPointer:
    """Tests for assign_pointer()."""

    def test_assign_raw(self, manager):
        """Test pointing a raw pointer at a heap block."""
        ptr = manager.create_pointer("ptr", target_type="int")
        heap = manager.allocate_heap("int_heap", 4)
        assert manager.assign_pointer(ptr, heap)
        assert manager.get_block(ptr).points_to == heap
        assert manager.find_pointers_to(heap) == [manager.get_block(ptr)]
        assert manager.events[-1].kind is EventKind.ASSIGN

    def test_assign_null(self, manager):
        """Test setting a pointer to nullptr."""
        ptr = manager.create_pointer("ptr")
        heap = manager.allocate_heap("int_heap", 4)
        manager.assign_pointer(ptr, heap)
        assert manager.assign_pointer(ptr, None)
        assert manager.get_block(ptr).points_to is None

    def test_assign_rejects_non_pointer(self, manager):
        """Test that only pointer blocks can be assigned."""
        value = manager.create_stack_variable("x", 4)
        heap = manager.allocate_heap("int_heap", 4)
        assert not manager.assign_pointer(value, heap)

    def test_assign_rejects_dead_target(self, manager):
        """Test that a dead block is never a valid target."""
        ptr = manager.create_pointer("ptr")
        heap = manager.allocate_heap("int_heap", 4)
        manager.deallocate(heap)
        assert not manager.assign_pointer(ptr, heap)
        assert manager.get_block(ptr).points_to is None

    def test_assign_shared_adds_owner(self, manager):
        """Test that a shared pointer becomes an owner of its new target."""
        p1 = manager.create_pointer("p1", Discipline.SHARED)
        heap = manager.allocate_heap("data", 4, Discipline.SHARED)
        manager.assign_pointer(p1, heap)
        assert manager.get_block(heap).ref_count == 2

    def test_assign_shared_adopt(self, manager):
        """Test that adopt takes over the initial owner."""
        p1 = manager.create_pointer("p1", Discipline.SHARED)
        heap = manager.allocate_heap("data", 4, Discipline.SHARED)
        manager.assign_pointer(p1, heap, adopt=True)
        assert manager.get_block(heap).ref_count == 1

    def test_reassign_shared_releases_old_target(self, manager):
        """Test that a shared pointer releases its previous target."""
        p1 = manager.create_pointer("p1", Discipline.SHARED)
        first = manager.allocate_heap("first", 4, Discipline.SHARED)
        second = manager.allocate_heap("second", 4, Discipline.SHARED)
        manager.assign_pointer(p1, first, adopt=True)
        manager.assign_pointer(p1, second, adopt=True)
        assert not manager.get_block(first).is_allocated
        assert manager.get_block(second).ref_count == 1

    def test_same_target_is_noop(self, manager, shared_pair):
        """Test that re-assigning the current target changes nothing."""
        p1, _, heap = shared_pair
        count = len(manager.events)
        assert manager.assign_pointer(p1, heap)
        assert manager.get_block(heap).ref_count == 2
        assert len(manager.events) == count


# ============================================================
# Shared / unique ownership Tests
# ============================================================

class TestSmartOwnership:
    """Tests for copy_shared() and move_unique()."""

    def test_copy_shared(self, manager, shared_pair):
        """Test that copying a shared pointer adds an owner."""
        p1, p2, heap = shared_pair
        copy = manager.get_block(p2)
        assert copy.storage is StorageClass.STACK
        assert copy.pointer_type is Discipline.SHARED
        assert copy.points_to == heap
        assert manager.get_block(heap).ref_count == 2
        assert manager.events[-1].kind is EventKind.COPY

    def test_owner_count_matches_ref_count(self, manager, shared_pair):
        """Test that live shared owners equal the reference count."""
        _, _, heap = shared_pair
        manager.copy_shared(shared_pair[1], "p3")
        owners = manager.find_pointers_to(heap)
        assert len(owners) == manager.get_block(heap).ref_count == 3

    def test_copy_shared_rejects_unique(self, manager):
        """Test that only shared pointers can be copied."""
        unique = manager.create_pointer("u", Discipline.UNIQUE)
        assert manager.copy_shared(unique, "copy") is None
        assert manager.copy_shared(99, "copy") is None

    def test_move_unique(self, manager):
        """Test transferring unique ownership."""
        src = manager.create_pointer("src", Discipline.UNIQUE)
        dst = manager.create_pointer("dst", Discipline.UNIQUE)
        heap = manager.allocate_heap("data", 4, Discipline.UNIQUE)
        manager.assign_pointer(src, heap)

        assert manager.move_unique(src, dst)
        assert manager.get_block(dst).points_to == heap
        assert manager.get_block(src).points_to is None
        assert manager.get_block(heap).is_allocated
        assert manager.events[-1].kind is EventKind.MOVE

    def test_move_unique_frees_previous(self, manager):
        """Test that the destination's previous target is freed."""
        src = manager.create_pointer("src", Discipline.UNIQUE)
        dst = manager.create_pointer("dst", Discipline.UNIQUE)
        moved = manager.allocate_heap("moved", 4, Discipline.UNIQUE)
        old = manager.allocate_heap("old", 4, Discipline.UNIQUE)
        manager.assign_pointer(src, moved)
        manager.assign_pointer(dst, old)

        manager.move_unique(src, dst)
        assert not manager.get_block(old).is_allocated
        assert manager.get_block(dst).points_to == moved

    def test_move_unique_rejects_mixed(self, manager):
        """Test that moving requires two unique pointers."""
        src = manager.create_pointer("src", Discipline.UNIQUE)
        dst = manager.create_pointer("dst", Discipline.SHARED)
        assert not manager.move_unique(src, dst)
        assert not manager.move_unique(src, None)

    def test_move_unique_to_self(self, manager):
        """Test that moving a pointer into itself keeps its target."""
        src = manager.create_pointer("src", Discipline.UNIQUE)
        heap = manager.allocate_heap("data", 4, Discipline.UNIQUE)
        manager.assign_pointer(src, heap)
        assert manager.move_unique(src, src)
        assert manager.get_block(src).points_to == heap


# ============================================================
# Scope exit Tests
# ============================================================

class TestEndScope:
    """Tests for end_scope() and unwind()."""

    def test_empty_stack(self, manager):
        """Test that an empty stack releases nothing."""
        assert manager.end_scope() is None

    def test_releases_top_of_stack(self, manager):
        """Test that the most recent stack block is released."""
        manager.create_stack_variable("a", 4)
        b = manager.create_stack_variable("b", 4)
        assert manager.end_scope() == b
        assert manager.stack_depth == 1
        assert [blk.name for blk in manager.stack_blocks()] == ["a"]

    def test_heap_blocks_untouched(self, manager):
        """Test that heap blocks are skipped when looking for the stack top."""
        a = manager.create_stack_variable("a", 4)
        heap = manager.allocate_heap("int_heap", 4)
        assert manager.end_scope() == a
        assert manager.get_block(heap).is_allocated

    def test_unique_frees_target(self, manager):
        """Test that a unique pointer leaving scope frees its target."""
        ptr = manager.create_pointer("ptr", Discipline.UNIQUE)
        heap = manager.allocate_heap("ptr_data", 4, Discipline.UNIQUE)
        manager.assign_pointer(ptr, heap)
        manager.end_scope()
        assert not manager.get_block(heap).is_allocated

    def test_shared_freed_once(self, manager, shared_pair):
        """Test that the last shared owner frees the block exactly once."""
        _, _, heap = shared_pair
        manager.end_scope()
        assert manager.get_block(heap).ref_count == 1
        manager.end_scope()
        block = manager.get_block(heap)
        assert not block.is_allocated
        assert block.ref_count == 0
        frees = [e for e in manager.events if e.kind is EventKind.DEALLOCATE and e.block_id == heap]
        assert len(frees) == 1

    def test_raw_pointer_leaves_leak(self, manager):
        """Test that a raw pointer leaving scope leaves its target behind."""
        ptr = manager.create_pointer("ptr", target_type="int")
        heap = manager.allocate_heap("int_heap", 4)
        manager.assign_pointer(ptr, heap)
        manager.end_scope()
        assert manager.get_block(heap).is_allocated
        assert manager.detect_leaks() == [heap]

    def test_pointer_to_stack_block_cleared(self, manager):
        """Test that a pointer to a released stack block is cleared."""
        ptr = manager.create_pointer("ptr", target_type="int")
        x = manager.create_stack_variable("x", 4)
        manager.assign_pointer(ptr, x)
        manager.end_scope()
        assert manager.get_block(ptr).points_to is None

    def test_unwind(self, manager):
        """Test that unwind releases every stack block."""
        manager.create_stack_variable("a", 4)
        manager.create_pointer("p")
        manager.allocate_heap("h", 4)
        assert manager.unwind() == 2
        assert manager.stack_blocks() == []
        assert manager.stack_depth == 0


# ============================================================
# Leak detection Tests
# ============================================================

class TestLeaks:
    """Tests for detect_leaks() and report_leaks()."""

    def test_no_leaks_when_referenced(self, manager):
        """Test that a pointed-to block is never reported."""
        ptr = manager.create_pointer("ptr")
        heap = manager.allocate_heap("int_heap", 4)
        manager.assign_pointer(ptr, heap)
        assert manager.detect_leaks() == []

    def test_unreferenced_raw_block(self, manager):
        """Test that an unreferenced raw block is a leak."""
        heap = manager.allocate_heap("int_heap", 4)
        assert manager.detect_leaks() == [heap]

    def test_smart_blocks_never_reported(self, manager):
        """Test that smart-managed blocks are exempt."""
        manager.allocate_heap("u", 4, Discipline.UNIQUE)
        manager.allocate_heap("s", 4, Discipline.SHARED)
        assert manager.detect_leaks() == []

    def test_report_leaks_records_events(self, manager):
        """Test that report_leaks() adds one LEAK event per block."""
        a = manager.allocate_heap("a", 4)
        b = manager.allocate_heap("b", 8)
        assert manager.report_leaks() == [a, b]
        leak_events = [e for e in manager.events if e.kind is EventKind.LEAK]
        assert [e.block_id for e in leak_events] == [a, b]

    def test_detect_leaks_is_pure(self, manager):
        """Test that detect_leaks() records nothing."""
        manager.allocate_heap("a", 4)
        count = len(manager.events)
        manager.detect_leaks()
        assert len(manager.events) == count


# ============================================================
# Session Tests
# ============================================================

class TestSession:
    """Tests for the event log, the clock and reset()."""

    def test_event_log_is_bounded(self):
        """Test that the oldest events are evicted first."""
        manager = MemoryManager(SimulatorConfig(event_log_limit=5))
        for i in range(8):
            manager.create_stack_variable(f"v{i}", 4)
        events = manager.events
        assert len(events) == 5
        assert events[0].block_id == 4
        assert events[-1].block_id == 8

    def test_default_limit(self, manager):
        """Test the default limit of 100 events."""
        for i in range(120):
            manager.create_stack_variable(f"v{i}", 4)
        assert len(manager.events) == 100

    def test_advance_ages_live_blocks(self, manager):
        """Test that the clock ages live blocks only."""
        a = manager.create_stack_variable("a", 4)
        b = manager.allocate_heap("b", 4)
        manager.advance()
        manager.deallocate(b)
        manager.advance(2)
        assert manager.clock == 3
        assert manager.get_block(a).lifetime == 3
        assert manager.get_block(b).lifetime == 1

    def test_events_carry_timestamp(self, manager):
        """Test that events record the logical clock."""
        manager.advance(4)
        manager.create_stack_variable("a", 4)
        assert manager.events[-1].timestamp == 4

    def test_reset(self, manager):
        """Test that reset discards state and restarts ids at 1."""
        manager.create_stack_variable("a", 4)
        manager.allocate_heap("b", 4)
        manager.advance()
        manager.reset()
        assert manager.blocks == []
        assert manager.events == []
        assert manager.clock == 0
        assert manager.stack_depth == 0
        assert manager.create_stack_variable("c", 4) == 1

    def test_reset_is_idempotent(self, manager):
        """Test that reset twice equals reset once."""
        manager.allocate_heap("b", 4)
        manager.reset()
        manager.reset()
        assert manager.blocks == []
        assert manager.allocate_heap("c", 4) == 1


# ============================================================
# Console rendering Tests
# ============================================================

class TestToConsole:
    """Tests for the memory state report."""

    def test_empty_state(self, manager):
        """Test rendering of an empty session."""
        output = manager.to_console()
        assert "=== Stack ===" in output
        assert "(empty stack)" in output
        assert "(no allocations)" in output
        assert "(no events)" in output

    def test_leak_warning(self, manager):
        """Test that leaks are reported at the top."""
        render_config.use_color = False
        manager.allocate_heap("int_heap", 4)
        output = manager.to_console()
        assert "memory leak detected" in output
        assert output.index("memory leak") < output.index("=== Stack ===")

    def test_pointer_connections(self, manager):
        """Test that pointer connections are listed."""
        ptr = manager.create_pointer("ptr", target_type="int")
        heap = manager.allocate_heap("int_heap", 4)
        manager.assign_pointer(ptr, heap)
        output = manager.to_console()
        assert "=== Pointers ===" in output
        assert f"ptr {render_config.pointer_arrow} int_heap" in output
        assert "Total allocated: 1 blocks (4 bytes)" in output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
