"""
memory_manager.py

The memory model: single source of truth for simulated allocation state.

MemoryManager owns the block registry and the bounded event log. It exposes
allocation, deallocation, pointer assignment, ownership transfer, scope exit
and leak detection, and enforces the ownership rules:

- ids are handed out from 1 and never reused within a session
- a dead block stays in the registry but is never again a valid target
- ``ref_count`` exists only on SHARED-managed blocks and never goes negative
- freeing a block clears every pointer that referred to it

Operations never raise on bad input; they return ``False`` or ``None`` and
leave the state untouched, so the caller decides how to report the failure.

Example:
    >>> manager = MemoryManager()
    >>> ptr = manager.create_pointer("ptr", Discipline.RAW, "int")
    >>> heap = manager.allocate_heap("int_heap", 4)
    >>> manager.assign_pointer(ptr, heap)
    True
    >>> manager.detect_leaks()
    []
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, List, Optional

from memory_model import (
    ClassLayout,
    Discipline,
    EventKind,
    MemoryBlock,
    MemoryEvent,
    PointerValue,
    SimulatorConfig,
    StorageClass,
    colorize,
    Ansi,
    format_address,
    render_config,
    simulator_config,
)

logger = logging.getLogger(__name__)


class MemoryManager:
    """Registry of simulated memory blocks and their ownership relations."""

    def __init__(self, config: Optional[SimulatorConfig] = None) -> None:
        """Initialize an empty session.

        Args:
            config: Simulator configuration (module default if None)
        """
        self.config = config if config is not None else simulator_config
        self._blocks: List[MemoryBlock] = []
        self._events: Deque[MemoryEvent] = deque(maxlen=self.config.event_log_limit)
        self._next_id = 1
        self._heap_count = 0
        self._clock = 0

    # ------------- Read-only accessors ------------- #

    @property
    def blocks(self) -> List[MemoryBlock]:
        """Every block ever created in this session, dead ones included."""
        return list(self._blocks)

    @property
    def events(self) -> List[MemoryEvent]:
        """Recorded events, oldest first (bounded)."""
        return list(self._events)

    @property
    def stack_depth(self) -> int:
        """Number of live stack blocks."""
        return len(self.stack_blocks())

    @property
    def clock(self) -> int:
        return self._clock

    def get_block(self, block_id: Optional[int]) -> Optional[MemoryBlock]:
        """Get a block by id, dead or alive."""
        if block_id is None:
            return None
        for block in self._blocks:
            if block.id == block_id:
                return block
        return None

    def live_blocks(self) -> List[MemoryBlock]:
        """Get all currently allocated blocks."""
        return [b for b in self._blocks if b.is_allocated]

    def stack_blocks(self) -> List[MemoryBlock]:
        """Get allocated stack blocks, bottom to top."""
        return [b for b in self._blocks if b.is_allocated and b.storage is StorageClass.STACK]

    def heap_blocks(self) -> List[MemoryBlock]:
        """Get allocated heap blocks (raw and smart-managed)."""
        return [b for b in self._blocks if b.is_allocated and b.is_heap]

    def heap_in_use(self) -> int:
        """Total size of allocated heap blocks."""
        return sum(b.size for b in self.heap_blocks())

    def find_pointers_to(self, block_id: int) -> List[MemoryBlock]:
        """Find all live pointer blocks currently referring to a block."""
        return [
            b for b in self._blocks
            if b.is_allocated and b.pointer is not None and b.pointer.target == block_id
        ]

    # ------------- Creation ------------- #

    def create_stack_variable(self, name: str, size: int) -> int:
        """Push a plain stack variable.

        Returns:
            The new block id
        """
        block = self._push_stack_block(name, size)
        self._add_event(
            EventKind.ALLOCATE, block.id,
            f"Stack variable created: {name} ({size} bytes)",
        )
        return block.id

    def create_pointer(
        self,
        name: str,
        discipline: Discipline = Discipline.RAW,
        target_type: str = "void",
    ) -> int:
        """Push a null pointer variable of the given discipline.

        Returns:
            The new block id
        """
        block = self._push_stack_block(name, self.config.pointer_size)
        block.pointer = PointerValue(discipline=discipline, target_type=target_type)
        self._add_event(
            EventKind.ALLOCATE, block.id,
            f"Pointer variable created: {name} ({discipline.label} to {target_type})",
        )
        return block.id

    def create_class_object(self, name: str, layout: Optional[ClassLayout]) -> Optional[int]:
        """Construct a class instance on the stack.

        Returns:
            The new block id, or None if no layout is given
        """
        if layout is None:
            logger.debug("create_class_object(%s) rejected: no class layout", name)
            return None
        block = self._push_stack_block(name, layout.total_size)
        block.layout = layout
        self._add_event(
            EventKind.CONSTRUCT, block.id,
            f"Object constructed: {name} (class {layout.name}, {layout.total_size} bytes)",
        )
        return block.id

    def allocate_heap(
        self,
        name: str,
        size: int,
        discipline: Discipline = Discipline.RAW,
    ) -> int:
        """Allocate a heap block managed by the given discipline.

        RAW allocations live on the plain heap; UNIQUE and SHARED ones are
        smart-managed. A SHARED allocation starts with one owner.

        Returns:
            The new block id
        """
        block = self._new_heap_block(name, size, discipline)
        self._add_event(
            EventKind.ALLOCATE, block.id,
            f"Heap allocated: {name} ({discipline.label}, {size} bytes)",
        )
        return block.id

    def allocate_class_object_heap(
        self,
        name: str,
        layout: Optional[ClassLayout],
        discipline: Discipline = Discipline.RAW,
    ) -> Optional[int]:
        """Construct a class instance on the heap.

        Returns:
            The new block id, or None if no layout is given
        """
        if layout is None:
            logger.debug("allocate_class_object_heap(%s) rejected: no class layout", name)
            return None
        block = self._new_heap_block(name, layout.total_size, discipline)
        block.layout = layout
        self._add_event(
            EventKind.CONSTRUCT, block.id,
            f"Object allocated on heap: {name} (class {layout.name}, "
            f"{discipline.label}, {layout.total_size} bytes)",
        )
        return block.id

    # ------------- Deallocation & ownership ------------- #

    def deallocate(self, block_id: Optional[int]) -> bool:
        """Free a block.

        A SHARED-managed block with more than one owner only loses one owner.
        Otherwise the block dies and every pointer referring to it is set to
        null.

        Returns:
            False if the id is unknown or the block is already dead
        """
        block = self._live(block_id)
        if block is None:
            logger.debug("deallocate(%s) rejected: unknown or dead block", block_id)
            return False

        if block.ref_count is not None and block.ref_count > 1:
            self._decrease_ref_count(block.id)
            return True

        self._kill(block, f"Memory freed: {block.name}")
        return True

    def assign_pointer(
        self,
        pointer_id: Optional[int],
        target_id: Optional[int],
        adopt: bool = False,
    ) -> bool:
        """Point a pointer block at a target block, or at nothing.

        A SHARED pointer first releases its previous target (which may free
        it) and then becomes an owner of the new one. With ``adopt`` the
        pointer takes over the owner count a SHARED allocation starts with
        instead of adding one.

        Args:
            pointer_id: Pointer block to update
            target_id: New target, or None for nullptr
            adopt: Take over the initial owner of a fresh SHARED allocation

        Returns:
            False if the pointer is unknown, dead or not a pointer, or if the
            target is unknown or dead
        """
        ptr = self._live(pointer_id)
        if ptr is None or ptr.pointer is None:
            logger.debug("assign_pointer(%s) rejected: not a live pointer", pointer_id)
            return False

        target: Optional[MemoryBlock] = None
        if target_id is not None:
            target = self._live(target_id)
            if target is None:
                logger.debug("assign_pointer(%s, %s) rejected: dead target", pointer_id, target_id)
                return False

        old_target = ptr.pointer.target
        if old_target is not None and old_target == target_id:
            return True

        if ptr.pointer.discipline is Discipline.SHARED and old_target is not None:
            self._decrease_ref_count(old_target)

        ptr.pointer.target = target_id

        if target is None:
            self._add_event(EventKind.ASSIGN, ptr.id, f"Pointer set to nullptr: {ptr.name}")
            return True

        if (
            ptr.pointer.discipline is Discipline.SHARED
            and target.ref_count is not None
            and not adopt
        ):
            target.ref_count += 1
        self._add_event(EventKind.ASSIGN, ptr.id, f"Pointer assigned: {ptr.name} -> {target.name}")
        return True

    def copy_shared(self, source_id: Optional[int], new_name: str) -> Optional[int]:
        """Copy-construct a shared pointer.

        The new stack pointer aliases the source's target and the target
        gains one owner.

        Returns:
            The new block id, or None if the source is not a live shared pointer
        """
        source = self._live(source_id)
        if (
            source is None
            or source.pointer is None
            or source.pointer.discipline is not Discipline.SHARED
        ):
            logger.debug("copy_shared(%s) rejected: not a live shared_ptr", source_id)
            return None

        block = self._push_stack_block(new_name, self.config.pointer_size)
        block.pointer = PointerValue(
            discipline=Discipline.SHARED,
            target=source.pointer.target,
            target_type=source.pointer.target_type,
        )

        target = self._live(source.pointer.target)
        if target is not None and target.ref_count is not None:
            target.ref_count += 1
            self._add_event(
                EventKind.COPY, block.id,
                f"shared_ptr copied: {source.name} -> {new_name} (ref count: {target.ref_count})",
            )
        else:
            self._add_event(EventKind.COPY, block.id, f"shared_ptr copied: {source.name} -> {new_name}")
        return block.id

    def move_unique(self, source_id: Optional[int], target_id: Optional[int]) -> bool:
        """Transfer ownership from one unique pointer to another.

        The destination's previously owned block, if any, is freed; the source
        is left empty. No reference count changes.

        Returns:
            False unless both blocks are live unique pointers
        """
        source = self._live(source_id)
        dest = self._live(target_id)
        if (
            source is None or dest is None
            or source.pointer is None or dest.pointer is None
            or source.pointer.discipline is not Discipline.UNIQUE
            or dest.pointer.discipline is not Discipline.UNIQUE
        ):
            logger.debug("move_unique(%s, %s) rejected: not live unique_ptrs", source_id, target_id)
            return False
        if source.id == dest.id:
            return True

        moved = source.pointer.target
        previous = dest.pointer.target
        if previous is not None and previous != moved:
            self.deallocate(previous)

        dest.pointer.target = moved
        source.pointer.target = None
        self._add_event(EventKind.MOVE, dest.id, f"unique_ptr moved: {source.name} -> {dest.name}")
        return True

    def end_scope(self) -> Optional[int]:
        """Release the most recently created live stack block.

        An owning pointer releases what it owns: a unique pointer frees its
        target, a shared pointer drops one owner of its target.

        Returns:
            The released block id, or None if the stack is empty
        """
        block = next(
            (b for b in reversed(self._blocks)
             if b.is_allocated and b.storage is StorageClass.STACK),
            None,
        )
        if block is None:
            return None

        self._kill(block, f"Scope exit released: {block.name}")

        if block.pointer is not None and block.pointer.target is not None:
            if block.pointer.discipline is Discipline.UNIQUE:
                self.deallocate(block.pointer.target)
            elif block.pointer.discipline is Discipline.SHARED:
                self._decrease_ref_count(block.pointer.target)
        return block.id

    def unwind(self) -> int:
        """Leave every remaining scope, top of the stack first.

        Returns:
            Number of stack blocks released
        """
        count = 0
        while self.end_scope() is not None:
            count += 1
        return count

    # ------------- Leak detection ------------- #

    def detect_leaks(self) -> List[int]:
        """Find leaked blocks.

        A block is leaked when it is a live heap block with RAW discipline
        and no live pointer refers to it. Smart-managed blocks are never
        reported.
        """
        referenced = {
            b.pointer.target for b in self._blocks
            if b.is_allocated and b.pointer is not None and b.pointer.target is not None
        }
        return [
            b.id for b in self._blocks
            if b.is_allocated
            and b.is_heap
            and b.discipline is Discipline.RAW
            and b.id not in referenced
        ]

    def report_leaks(self) -> List[int]:
        """Detect leaks and record one LEAK event per leaked block."""
        leaks = self.detect_leaks()
        for block_id in leaks:
            block = self.get_block(block_id)
            self._add_event(
                EventKind.LEAK, block_id,
                f"Memory leak: {block.name} ({block.size} bytes @{format_address(block.address)})",
            )
        if leaks:
            logger.info("%d leaked block(s): %s", len(leaks), leaks)
        return leaks

    # ------------- Session ------------- #

    def advance(self, steps: int = 1) -> None:
        """Advance the logical clock and age every live block."""
        self._clock += steps
        for block in self._blocks:
            if block.is_allocated:
                block.lifetime += steps

    def reset(self) -> None:
        """Discard all state; the next block id is 1 again."""
        self._blocks.clear()
        self._events = deque(maxlen=self.config.event_log_limit)
        self._next_id = 1
        self._heap_count = 0
        self._clock = 0

    # ------------- Internals ------------- #

    def _live(self, block_id: Optional[int]) -> Optional[MemoryBlock]:
        block = self.get_block(block_id)
        if block is None or not block.is_allocated:
            return None
        return block

    def _take_id(self) -> int:
        block_id = self._next_id
        self._next_id += 1
        return block_id

    def _push_stack_block(self, name: str, size: int) -> MemoryBlock:
        # a block freed below the top keeps its slot; new blocks go above the top
        stack = self.stack_blocks()
        slot = stack[-1].slot + 1 if stack else 0
        block = MemoryBlock(
            id=self._take_id(),
            name=name,
            size=size,
            storage=StorageClass.STACK,
            address=self.config.stack_base + slot * self.config.stack_slot_size,
            slot=slot,
        )
        self._blocks.append(block)
        return block

    def _new_heap_block(self, name: str, size: int, discipline: Discipline) -> MemoryBlock:
        block = MemoryBlock(
            id=self._take_id(),
            name=name,
            size=size,
            storage=StorageClass.HEAP if discipline is Discipline.RAW else StorageClass.SMART_HEAP,
            address=self.config.heap_base + self._heap_count * self.config.heap_stride,
            slot=self._heap_count,
            discipline=discipline,
            ref_count=1 if discipline is Discipline.SHARED else None,
        )
        self._blocks.append(block)
        self._heap_count += 1
        return block

    def _kill(self, block: MemoryBlock, description: str) -> None:
        """Mark a block dead and clear every pointer that referred to it."""
        block.is_allocated = False
        if block.ref_count is not None:
            block.ref_count = 0

        self._add_event(EventKind.DEALLOCATE, block.id, description)
        if block.is_object:
            self._add_event(
                EventKind.DESTRUCT, block.id,
                f"Object destroyed: {block.name} (class {block.class_name})",
            )

        for other in self._blocks:
            if other.pointer is not None and other.pointer.target == block.id:
                other.pointer.target = None
                logger.debug("pointer %s cleared: target #%d freed", other.name, block.id)

    def _decrease_ref_count(self, block_id: int) -> None:
        """Drop one owner of a SHARED block; the last owner frees it."""
        block = self._live(block_id)
        if block is None or block.ref_count is None or block.ref_count <= 0:
            return
        block.ref_count -= 1
        self._add_event(
            EventKind.ASSIGN, block.id,
            f"Reference count decreased: {block.name} (now {block.ref_count})",
        )
        if block.ref_count == 0:
            self.deallocate(block.id)

    def _add_event(self, kind: EventKind, block_id: int, description: str) -> None:
        self._events.append(MemoryEvent(kind, block_id, description, self._clock))
        logger.debug("%s #%d: %s", kind.value, block_id, description)

    # ------------- Console rendering ------------- #

    def to_console(self) -> str:
        """Render the current memory state to console format."""
        lines: List[str] = []
        lines.append("=" * 70)
        lines.append(" Memory State")
        lines.append("=" * 70)

        leaks = self.detect_leaks()
        if leaks:
            lines.append(colorize(f"WARNING: memory leak detected! {len(leaks)} block(s)", Ansi.RED + Ansi.BOLD))
            for block_id in leaks:
                block = self.get_block(block_id)
                lines.append(f"  - {block.name} ({block.size} bytes, @{format_address(block.address)})")
            lines.append("")

        lines.append("=== Stack ===")
        stack = self.stack_blocks()
        if not stack:
            lines.append("(empty stack)")
        for block in stack:
            lines.append(f"│ {block.to_console()}")
        lines.append("")

        lines.append("=== Heap ===")
        heap = self.heap_blocks()
        if not heap:
            lines.append("(no allocations)")
        else:
            lines.append(f"Total allocated: {len(heap)} blocks ({self.heap_in_use()} bytes)")
        for block in heap:
            lines.append(f"│ {block.to_console()}")
        lines.append("")

        lines.append("=== Pointers ===")
        connections = [
            b for b in self._blocks
            if b.is_allocated and b.pointer is not None and b.pointer.target is not None
        ]
        if not connections:
            lines.append("(no pointer connections)")
        for ptr in connections:
            target = self.get_block(ptr.pointer.target)
            label = target.name if target is not None else "(dangling)"
            if target is not None and target.is_object:
                label += f" <{target.class_name}>"
            lines.append(f"  {ptr.name} {render_config.pointer_arrow} {label}")

        if not render_config.compact_mode:
            lines.append("")
            lines.append("=== Recent Events ===")
            recent = list(self._events)[-render_config.event_count:]
            if not recent:
                lines.append("(no events)")
            for event in reversed(recent):
                lines.append(f"  {event.to_console()}")

        return "\n".join(lines)

    def print(self) -> None:
        """Print the memory state to console."""
        print(self.to_console())
