"""
example_scripts.py

Predefined example programs for the memory simulator.

Each example is a ``(title, source)`` pair. The sources are plain text and
only rely on the subset understood by ``script_interpreter``.
"""

from typing import List, Tuple

EXAMPLES: List[Tuple[str, str]] = [
    (
        "Raw pointer - memory leak",
        """\
int main() {
    int* ptr = new int;
    // no delete before leaving main
    return 0;
}
""",
    ),
    (
        "Raw pointer - proper usage",
        """\
int main() {
    int* ptr = new int;
    delete ptr;
    return 0;
}
""",
    ),
    (
        "unique_ptr - automatic cleanup",
        """\
int main() {
    unique_ptr<int> ptr = make_unique<int>();
    return 0;
}
""",
    ),
    (
        "shared_ptr - reference counting",
        """\
int main() {
    shared_ptr<int> ptr1 = make_shared<int>();
    shared_ptr<int> ptr2 = ptr1;
    // two owners: reference count is 2
    return 0;
}
""",
    ),
    (
        "Dangling pointer",
        """\
int main() {
    int* ptr1 = new int;
    int* ptr2 = ptr1;
    delete ptr1;
    // ptr2 referred to the freed block and is now null
    return 0;
}
""",
    ),
    (
        "Stack vs heap",
        """\
int main() {
    int stackVar = 5;
    int* heapPtr = new int;
    delete heapPtr;
    return 0;
}
""",
    ),
    (
        "Basic class",
        """\
class Point {
public:
    int x;
    int y;
};

int main() {
    Point p1;
    Point* p2 = new Point();
    delete p2;
    return 0;
}
""",
    ),
    (
        "Class with smart pointers",
        """\
class Player {
public:
    int health;
    int mana;
};

int main() {
    Player p1;
    unique_ptr<Player> p2 = make_unique<Player>();
    shared_ptr<Player> p3 = make_shared<Player>();
    return 0;
}
""",
    ),
    (
        "Nested class",
        """\
class Vector {
public:
    int x;
    int y;
};

class Entity {
public:
    Vector position;
    int id;
};

int main() {
    Entity e;
    return 0;
}
""",
    ),
    (
        "unique_ptr - ownership transfer",
        """\
int main() {
    unique_ptr<double> first = make_unique<double>();
    unique_ptr<double> second;
    second = std::move(first);
    return 0;
}
""",
    ),
]


def example_count() -> int:
    """Number of predefined examples."""
    return len(EXAMPLES)


def get_example(index: int) -> Tuple[str, str]:
    """Get an example by 0-based index.

    Raises:
        IndexError: If the index is out of range
    """
    if not 0 <= index < len(EXAMPLES):
        raise IndexError(f"No example #{index + 1} (have {len(EXAMPLES)})")
    return EXAMPLES[index]
