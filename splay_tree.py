# splay_tree.py

import logging
import numbers

logger = logging.getLogger(__name__)


class SplayTreeError(AssertionError):
    """
    Raised when a precondition or structural invariant of the splay tree is violated.
    These are programming errors: callers are not expected to recover from them.
    """


class Node:
    """
    Represents a node in the splay tree.
    Each node has a key and the arena indices of its parent and children (None when absent).
    """
    __slots__ = ('key', 'parent', 'left', 'right')

    def __init__(self, key):
        self.key = key
        self.parent = None
        self.left = None
        self.right = None

    def __repr__(self):
        return f"Node(key={self.key}, parent={self.parent}, left={self.left}, right={self.right})"


class SplayTree:
    """
    Fixed-size splay tree over the keys 1..n.

    All n nodes are allocated together in an arena (``self.nodes``) and link to
    each other by arena index. The node holding key k sits at index k - 1, which
    lets ``splay_by_key`` locate it in O(1). That offset lookup is only valid
    because the key set is exactly 1..n; pass ``direct_lookup=False`` to locate
    nodes by ordinary BST search from the root instead.
    """
    def __init__(self, n, direct_lookup=True):
        if isinstance(n, bool) or not isinstance(n, numbers.Integral):
            raise SplayTreeError(f"Tree size must be an integer, got {n!r}")
        if n < 0:
            raise SplayTreeError(f"Tree size must be non-negative, got {n}")

        n = int(n)
        self.size = n
        self.direct_lookup = direct_lookup
        self.total_rotations = 0  # To track the number of rotations for performance metrics
        self.nodes = [Node(i + 1) for i in range(n)]
        self.root = None
        self._released = False

        # Chain the nodes so that n is the root and 1 is the deepest leaf:
        #       n
        #      /
        #    ...
        #    /
        #   1
        for i in range(1, n):
            self._set_left(i, i - 1)
        if n > 0:
            self._set_root(n - 1)

        logger.debug(f"Built splay tree of size {n} (direct_lookup={direct_lookup}).")

    @classmethod
    def build(cls, n, direct_lookup=True):
        """Creates a splay tree of size n arranged as a left-leaning chain."""
        return cls(n, direct_lookup=direct_lookup)

    def release(self):
        """Releases the node arena. The tree cannot be used afterwards."""
        self._check_alive()
        self.nodes = None
        self.root = None
        self._released = True
        logger.debug(f"Released splay tree of size {self.size}.")

    def __enter__(self):
        self._check_alive()
        return self

    def __exit__(self, exc_type, exc, tb):
        if not self._released:
            self.release()
        return False

    def __len__(self):
        self._check_alive()
        return self.size

    def _check_alive(self):
        if self._released:
            raise SplayTreeError("Splay tree has already been released")

    def _check_index(self, x, what="node"):
        if x is None:
            raise SplayTreeError(f"Missing {what}")
        if isinstance(x, bool) or not isinstance(x, numbers.Integral) or not 0 <= x < self.size:
            raise SplayTreeError(f"{what.capitalize()} {x!r} is not in the tree")

    def _set_left(self, p, c):
        """Sets p's left child to c and updates c's parent if c is not None."""
        if p is None:
            raise SplayTreeError("Cannot set the left child of an empty tree")
        self.nodes[p].left = c
        if c is not None:
            self.nodes[c].parent = p

    def _set_right(self, p, c):
        """Sets p's right child to c and updates c's parent if c is not None."""
        if p is None:
            raise SplayTreeError("Cannot set the right child of an empty tree")
        self.nodes[p].right = c
        if c is not None:
            self.nodes[c].parent = p

    def _set_root(self, x):
        if x is None:
            raise SplayTreeError("Root cannot be empty")
        self.root = x
        self.nodes[x].parent = None

    def _replace_child(self, parent, old, new):
        """
        Replaces old with new under parent. If parent is None, old must be the
        root and new takes its place.
        """
        if old is None:
            raise SplayTreeError("Cannot swap out an empty node")
        if parent is None:
            if self.root != old:
                raise SplayTreeError(
                    f"Cannot swap out non-root key {self.nodes[old].key} at the root")
            self._set_root(new)
            return
        p = self.nodes[parent]
        if p.left == old:
            self._set_left(parent, new)
        elif p.right == old:
            self._set_right(parent, new)
        else:
            raise SplayTreeError(
                f"Key {self.nodes[old].key} is not a child of key {p.key}")

    def rotate_right(self, y):
        r"""
        Right rotation about y, with x = left(y) as the pivot.

                 z                              z
                /                              /
               y                              x
              / \                            / \
             x   C          ====>           A   y
            / \                                / \
           A   B                              B   C
        """
        self._check_alive()
        self._check_index(y, "rotation root")
        x = self.nodes[y].left
        if x is None:
            raise SplayTreeError("Cannot rotate right with no left child")

        z = self.nodes[y].parent
        b = self.nodes[x].right

        self._replace_child(z, y, x)
        self._set_right(x, y)
        self._set_left(y, b)
        self.total_rotations += 1

    def rotate_left(self, x):
        r"""
        Left rotation about x, with y = right(x) as the pivot.

                 z                              z
                /                              /
               x                              y
              / \                            / \
             A   y          ====>           x   C
                / \                        / \
               B   C                      A   B
        """
        self._check_alive()
        self._check_index(x, "rotation root")
        y = self.nodes[x].right
        if y is None:
            raise SplayTreeError("Cannot rotate left with no right child")

        z = self.nodes[x].parent
        b = self.nodes[y].left

        self._replace_child(z, x, y)
        self._set_left(y, x)
        self._set_right(x, b)
        self.total_rotations += 1

    def splay_step(self, x):
        """Moves x one or two levels closer to the root."""
        self._check_alive()
        self._check_index(x)
        nodes = self.nodes

        y = nodes[x].parent
        if y is None:
            if self.root != x:
                self._corrupted(x)  # a second parentless node
            return  # x is already the root

        z = nodes[y].parent
        if z is None:
            # Zig step
            if nodes[y].left == x:
                self.rotate_right(y)
            elif nodes[y].right == x:
                self.rotate_left(y)
            else:
                self._corrupted(x)
            return

        if nodes[z].left == y and nodes[y].left == x:
            # Zig-Zig step (left-left)
            self.rotate_right(z)
            self.rotate_right(y)
        elif nodes[z].right == y and nodes[y].right == x:
            # Zig-Zig step (right-right)
            self.rotate_left(z)
            self.rotate_left(y)
        elif nodes[z].left == y and nodes[y].right == x:
            # Zig-Zag step (left-right)
            self.rotate_left(y)
            self.rotate_right(z)
        elif nodes[z].right == y and nodes[y].left == x:
            # Zig-Zag step (right-left)
            self.rotate_right(y)
            self.rotate_left(z)
        else:
            self._corrupted(x)

    def _corrupted(self, x):
        logger.error(f"Invalid tree shape around key {self.nodes[x].key}:\n{self.dump()}")
        raise SplayTreeError(f"Cannot perform splay step on key {self.nodes[x].key}: invalid tree")

    def splay(self, x):
        """Splays the node at arena index x to the root of the tree."""
        self._check_alive()
        self._check_index(x)
        x = int(x)
        while self.root != x:
            self.splay_step(x)

    def splay_by_key(self, key):
        """Splays the node holding key to the root. Requires 1 <= key <= n."""
        self._check_alive()
        if isinstance(key, bool) or not isinstance(key, numbers.Integral) or not 1 <= key <= self.size:
            raise SplayTreeError(f"Key {key!r} is outside [1, {self.size}]")
        key = int(key)
        x = key - 1 if self.direct_lookup else self.find(key)
        if x is None:
            raise SplayTreeError(f"Key {key} is missing from the tree")
        self.splay(x)
        if self.nodes[self.root].key != key:
            raise SplayTreeError(f"Splay of key {key} failed")

    def find(self, key):
        """Finds the arena index of key by BST search, without splaying it."""
        self._check_alive()
        z = self.root
        while z is not None:
            node = self.nodes[z]
            if key == node.key:
                return z
            elif key < node.key:
                z = node.left
            else:
                z = node.right
        return None

    @property
    def root_key(self):
        self._check_alive()
        return None if self.root is None else self.nodes[self.root].key

    def depth(self, x):
        """Calculates the depth of a node from the root."""
        self._check_alive()
        self._check_index(x)
        depth = 0
        current = self.nodes[x].parent
        while current is not None:
            depth += 1
            if depth > self.size:
                raise SplayTreeError(f"Parent chain of key {self.nodes[x].key} contains a cycle")
            current = self.nodes[current].parent
        return depth

    def inorder(self):
        """Yields the keys of the tree in symmetric order."""
        self._check_alive()
        stack = []
        current = self.root
        while stack or current is not None:
            while current is not None:
                stack.append(current)
                current = self.nodes[current].left
            current = stack.pop()
            yield self.nodes[current].key
            current = self.nodes[current].right

    def check_invariants(self):
        """
        Verifies the structural invariants of the tree:

        - exactly one node has no parent, and it is the recorded root;
        - every child link is mirrored by the child's parent link;
        - the tree is connected and acyclic over all n nodes;
        - an inorder traversal yields 1, 2, ..., n.

        Raises SplayTreeError on the first violation found.
        """
        self._check_alive()
        if self.size == 0:
            if self.root is not None:
                raise SplayTreeError("Empty tree has a root")
            return

        roots = [i for i, node in enumerate(self.nodes) if node.parent is None]
        if roots != [self.root]:
            raise SplayTreeError(f"Expected the single root {self.root}, found parentless nodes {roots}")

        for i, node in enumerate(self.nodes):
            if node.key != i + 1:
                raise SplayTreeError(f"Slot {i} holds key {node.key}")
            for child in (node.left, node.right):
                if child is not None and self.nodes[child].parent != i:
                    raise SplayTreeError(
                        f"Key {self.nodes[child].key} does not point back to parent key {node.key}")
            if node.parent is not None:
                parent = self.nodes[node.parent]
                if parent.left != i and parent.right != i:
                    raise SplayTreeError(
                        f"Key {node.key} is not a child of its parent key {parent.key}")

        # Bounded walk so a cycle cannot loop forever.
        keys = []
        stack = []
        current = self.root
        while stack or current is not None:
            while current is not None:
                stack.append(current)
                if len(stack) > self.size:
                    raise SplayTreeError("Tree contains a cycle")
                current = self.nodes[current].left
            current = stack.pop()
            keys.append(self.nodes[current].key)
            if len(keys) > self.size:
                raise SplayTreeError("Tree contains a cycle")
            current = self.nodes[current].right

        if keys != list(range(1, self.size + 1)):
            raise SplayTreeError(f"Inorder traversal {keys} is not 1..{self.size}")

    def dump(self):
        """Returns a per-node listing of the tree links, for debugging."""
        self._check_alive()

        def key_of(i):
            return 'none' if i is None else self.nodes[i].key

        lines = [f"root: {key_of(self.root)}"]
        for node in self.nodes:
            lines.append(f"key: {node.key}, parent: {key_of(node.parent)}, "
                         f"left: {key_of(node.left)}, right: {key_of(node.right)}")
        return '\n'.join(lines)

    def __repr__(self):
        if self._released:
            return f"SplayTree(size={self.size}, released)"
        return f"SplayTree(size={self.size}, root={self.root_key})"
