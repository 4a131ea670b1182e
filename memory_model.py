"""
memory_model.py

Entity model for the stack / heap / smart-pointer memory simulator.

This module provides:
- Enums for storage classes, pointer disciplines and event kinds
- Data structures for memory blocks, pointer values, class layouts and events
- Simulator and console rendering configuration
- Console rendering helpers for blocks and events

The objects defined here carry no behaviour beyond derived properties and
rendering; every state transition goes through ``memory_manager.MemoryManager``.

Example:
    >>> from memory_model import *
    >>>
    >>> layout = ClassLayout("Point")
    >>> _ = layout.add_member("x", "int", 4)
    >>> _ = layout.add_member("y", "int", 4)
    >>> layout.total_size
    8
    >>> ptr = PointerValue(Discipline.SHARED, target=3, target_type="Point")
    >>> str(ptr)
    '→ #3'
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


# ============================================================
#  Simulator configuration
# ============================================================

DEFAULT_TYPE_SIZES: Dict[str, int] = {
    "int": 4,
    "float": 4,
    "double": 8,
    "char": 1,
    "long": 8,
    "short": 2,
    "bool": 1,
    "void": 1,
    "size_t": 8,
}


@dataclass
class SimulatorConfig:
    """Configuration shared by the memory manager and the interpreter.

    Attributes:
        event_log_limit: Maximum number of events kept (oldest evicted first)
        pointer_size: Size in bytes of any pointer block
        stack_base: Synthetic address of the first stack slot
        stack_slot_size: Address distance between two stack slots
        heap_base: Synthetic address of the first heap block
        heap_stride: Address distance between two heap blocks
        type_sizes: Sizes of the basic type keywords
    """
    event_log_limit: int = 100
    pointer_size: int = 8
    stack_base: int = 0x7fff_0000
    stack_slot_size: int = 8
    heap_base: int = 0x1000
    heap_stride: int = 0x100
    type_sizes: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_TYPE_SIZES))

    def is_basic_type(self, type_name: str) -> bool:
        """Check whether a type keyword is a basic (primitive) type."""
        return type_name in self.type_sizes

    def sizeof(self, type_name: str) -> int:
        """Size of a basic type; unlisted names are sized like ``int``."""
        return self.type_sizes.get(type_name, self.type_sizes["int"])


# Global configuration instance
simulator_config = SimulatorConfig()


# ============================================================
#  Console render configuration
# ============================================================

@dataclass
class ConsoleRenderConfig:
    """Configuration for console rendering output.

    Attributes:
        pointer_arrow: Symbol to use for pointer visualization (→ or ->)
        show_addresses_hex: Display addresses in hexadecimal format
        event_count: Number of most recent events shown in a report
        compact_mode: Use more compact output format
        use_color: Wrap block names in ANSI colour codes
    """
    pointer_arrow: str = "→"
    show_addresses_hex: bool = True
    event_count: int = 5
    compact_mode: bool = False
    use_color: bool = False


render_config = ConsoleRenderConfig()


class Ansi:
    """ANSI escape sequences used by the console renderer."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"


def colorize(text: str, color: str) -> str:
    """Wrap text in a colour code when colour output is enabled."""
    if not render_config.use_color or not color:
        return text
    return f"{color}{text}{Ansi.RESET}"


def format_address(address: int) -> str:
    """Format a synthetic address according to the render configuration."""
    return hex(address) if render_config.show_addresses_hex else str(address)


# ============================================================
#  Basic types: storage classes, disciplines, events
# ============================================================

class StorageClass(Enum):
    """Where a simulated block lives."""
    STACK = "stack"
    HEAP = "heap"
    SMART_HEAP = "smart_heap"


class Discipline(Enum):
    """Ownership policy of a pointer or of the allocation it manages."""
    RAW = "raw"
    UNIQUE = "unique"
    SHARED = "shared"

    @property
    def label(self) -> str:
        """Source-level spelling of the discipline."""
        return {
            Discipline.RAW: "raw*",
            Discipline.UNIQUE: "unique_ptr",
            Discipline.SHARED: "shared_ptr",
        }[self]


class EventKind(Enum):
    """Kind of state transition recorded in the event log."""
    ALLOCATE = "alloc"
    DEALLOCATE = "free"
    ASSIGN = "assign"
    COPY = "copy"
    MOVE = "move"
    CONSTRUCT = "construct"
    DESTRUCT = "destruct"
    LEAK = "leak"


# ============================================================
#  Pointers and class layouts
# ============================================================

@dataclass
class PointerValue:
    """Pointer metadata attached to a pointer block.

    Attributes:
        discipline: RAW, UNIQUE or SHARED ownership
        target: Id of the referenced block, or None for a null pointer
        target_type: Type of the pointed-to value
    """
    discipline: Discipline
    target: Optional[int] = None
    target_type: str = "void"

    @property
    def is_null(self) -> bool:
        """Whether this pointer refers to nothing."""
        return self.target is None

    def __str__(self) -> str:
        """Return string representation of the pointer."""
        if self.is_null:
            return "NULL"
        return f"{render_config.pointer_arrow} #{self.target}"


@dataclass
class MemberLayout:
    """Describes one member of a class.

    Attributes:
        name: Member name
        type_name: Type of the member
        size: Size in bytes (a nested class member uses the class total size)
    """
    name: str
    type_name: str
    size: int


@dataclass
class ClassLayout:
    """Describes a user-defined class type.

    Attributes:
        name: Class name
        members: Ordered member descriptors
        total_size: Sum of member sizes, kept current by add_member()
        has_constructor: A constructor signature was seen (informational)
        has_destructor: A destructor signature was seen (informational)
        closed: The definition has ended; no more members may be added
    """
    name: str
    members: List[MemberLayout] = field(default_factory=list)
    total_size: int = 0
    has_constructor: bool = False
    has_destructor: bool = False
    closed: bool = False

    def add_member(self, name: str, type_name: str, size: int) -> MemberLayout:
        """Append a member and grow the total size.

        Raises:
            ValueError: If the class definition is already closed
        """
        if self.closed:
            raise ValueError(f"Class '{self.name}' is closed for definition")
        member = MemberLayout(name=name, type_name=type_name, size=size)
        self.members.append(member)
        self.total_size += size
        return member

    def close(self) -> None:
        """Mark the definition as finished."""
        self.closed = True

    def get_member(self, name: str) -> Optional[MemberLayout]:
        """Get a member descriptor by name."""
        for member in self.members:
            if member.name == name:
                return member
        return None

    def to_console(self) -> str:
        """Render the class layout to console format."""
        lines: List[str] = [f"class {self.name} (size={self.total_size} bytes)"]
        offset = 0
        for m in self.members:
            lines.append(f"  + {m.name:15} : {m.type_name:12} @ offset {offset}")
            offset += m.size
        return "\n".join(lines)


# ============================================================
#  Memory blocks
# ============================================================

@dataclass
class MemoryBlock:
    """A simulated allocation: a stack slot or a heap allocation.

    The kind of block is derived from its optional parts rather than from
    independent flags: a block with ``pointer`` set is a pointer of that
    discipline, a block with only ``layout`` set is a class instance, and a
    block with neither is a plain value.

    Attributes:
        id: Unique identifier within a session (never reused)
        name: Display name
        size: Size in bytes
        storage: STACK, HEAP or SMART_HEAP
        address: Synthetic address, display only
        slot: Logical position (stack depth or heap ordinal at creation)
        is_allocated: False once the block is dead
        lifetime: Number of clock ticks the block has been alive
        pointer: Pointer metadata when the block is a pointer
        layout: Class layout when the block is a class instance
        discipline: Ownership discipline managing this allocation
        ref_count: Number of shared owners; None unless discipline is SHARED
    """
    id: int
    name: str
    size: int
    storage: StorageClass
    address: int
    slot: int = 0
    is_allocated: bool = True
    lifetime: int = 0
    pointer: Optional[PointerValue] = None
    layout: Optional[ClassLayout] = None
    discipline: Discipline = Discipline.RAW
    ref_count: Optional[int] = None

    @property
    def is_pointer(self) -> bool:
        return self.pointer is not None

    @property
    def is_object(self) -> bool:
        return self.pointer is None and self.layout is not None

    @property
    def is_heap(self) -> bool:
        return self.storage in (StorageClass.HEAP, StorageClass.SMART_HEAP)

    @property
    def points_to(self) -> Optional[int]:
        """Id of the referenced block, None for null or non-pointer blocks."""
        return self.pointer.target if self.pointer is not None else None

    @property
    def pointer_type(self) -> Optional[Discipline]:
        return self.pointer.discipline if self.pointer is not None else None

    @property
    def class_name(self) -> Optional[str]:
        return self.layout.name if self.layout is not None else None

    def color(self) -> str:
        """ANSI colour for this block in console output."""
        if not self.is_allocated:
            return ""
        if self.is_object:
            return Ansi.CYAN if self.storage is StorageClass.STACK else Ansi.MAGENTA
        if self.pointer is not None:
            return {
                Discipline.RAW: Ansi.YELLOW,
                Discipline.UNIQUE: Ansi.GREEN,
                Discipline.SHARED: Ansi.BLUE,
            }[self.pointer.discipline]
        if self.storage is StorageClass.STACK:
            return Ansi.BLUE
        if self.storage is StorageClass.HEAP:
            return Ansi.RED
        return Ansi.MAGENTA

    def to_console(self) -> str:
        """Render the block as a single console line."""
        if self.is_object:
            kind = f"<{self.class_name}>"
        elif self.pointer is not None:
            kind = f"[{self.pointer.discipline.label}]"
        else:
            kind = ""
        line = f"{self.name:15} {kind:13} {self.size:>4}B @{format_address(self.address)}"
        if self.ref_count is not None and self.ref_count > 0:
            line += f" (refs:{self.ref_count})"
        if self.pointer is not None:
            line += f" {self.pointer}"
        if not self.is_allocated:
            line += " <freed>"
        return colorize(line, self.color())


# ============================================================
#  Event log
# ============================================================

@dataclass(frozen=True)
class MemoryEvent:
    """An immutable record of one state transition.

    Attributes:
        kind: What happened
        block_id: Subject block id
        description: Human-readable description
        timestamp: Logical clock value when the event was recorded
    """
    kind: EventKind
    block_id: int
    description: str
    timestamp: int

    _TAGS = {
        EventKind.ALLOCATE: ("[ALLOC]", Ansi.GREEN),
        EventKind.DEALLOCATE: ("[FREE]", Ansi.RED),
        EventKind.ASSIGN: ("[ASSIGN]", Ansi.YELLOW),
        EventKind.COPY: ("[COPY]", Ansi.BLUE),
        EventKind.MOVE: ("[MOVE]", Ansi.MAGENTA),
        EventKind.CONSTRUCT: ("[CONSTRUCT]", Ansi.CYAN),
        EventKind.DESTRUCT: ("[DESTRUCT]", Ansi.YELLOW),
        EventKind.LEAK: ("[LEAK!]", Ansi.RED + Ansi.BOLD),
    }

    def to_console(self) -> str:
        tag, color = self._TAGS[self.kind]
        return f"{colorize(f'{tag:11}', color)} {self.description}"
