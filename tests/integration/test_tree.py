"""Tests for tree construction and incremental append.

These tests verify that:
1. Built roots match an independent level-by-level computation
2. A node without a right child is hashed with an empty right input
3. Appending one document gives the same tree as rebuilding
4. Only the new leaf's path is rewritten on append
"""

import pytest

from merkle_doc_tree.errors import CorruptedStoreError, InvalidIndexError, StoreError
from merkle_doc_tree.merkle import (
    IncrementalUpdater,
    TreeBuilder,
    TreeDescriptor,
    layer_len,
    max_layer,
)
from merkle_doc_tree.storage import InMemoryDocumentStore, InMemoryNodeStore, NodeStore

from tests.conftest import make_documents, reference_root


class RecordingNodeStore(InMemoryNodeStore):
    """Node store that remembers which keys were written."""

    def __init__(self) -> None:
        super().__init__()
        self.written: list[tuple[int, int]] = []

    def put(self, layer: int, index: int, value: bytes) -> None:
        self.written.append((layer, index))
        super().put(layer, index, value)


class TestLayerArithmetic:
    """Tests for height and layer-length formulas."""

    @pytest.mark.parametrize(
        "n, expected",
        [(0, 0), (1, 0), (2, 1), (3, 2), (4, 2), (5, 3), (8, 3), (9, 4), (1024, 10), (1025, 11)],
    )
    def test_max_layer(self, n: int, expected: int):
        assert max_layer(n) == expected

    def test_layer_len_halves_rounding_up(self):
        """Each layer has ceil(previous / 2) nodes."""
        for n in range(1, 70):
            for i in range(1, max_layer(n) + 1):
                assert layer_len(n, i) == (layer_len(n, i - 1) + 1) // 2
            assert layer_len(n, max_layer(n)) == 1

    def test_descriptor_new(self):
        descriptor = TreeDescriptor.new(5)
        assert descriptor.n == 5
        assert descriptor.max_layer == 3
        assert descriptor.height == 4
        assert descriptor.has_node(0, 4)
        assert not descriptor.has_node(0, 5)
        assert descriptor.has_node(3, 0)
        assert not descriptor.has_node(4, 0)

    def test_descriptor_rejects_negative_count(self):
        with pytest.raises(ValueError):
            TreeDescriptor.new(-1)


class TestTreeBuilder:
    """Tests for full tree construction."""

    @pytest.mark.parametrize("n", [1, 2, 3, 4, 5, 7, 8, 9, 16, 17, 33])
    def test_root_matches_reference(self, hasher, n: int):
        documents = make_documents(n)
        nodes = InMemoryNodeStore()
        descriptor = TreeBuilder(hasher, InMemoryDocumentStore(documents), nodes).build(n)

        assert nodes.get(descriptor.max_layer, 0) == reference_root(documents)

    def test_three_document_layout(self, hasher):
        """The lone third leaf is paired with an empty right input, not itself."""
        d0, d1, d2 = b"d0", b"d1", b"d2"
        nodes = InMemoryNodeStore()
        TreeBuilder(hasher, InMemoryDocumentStore([d0, d1, d2]), nodes).build(3)

        l0, l1, l2 = hasher.leaf(d0), hasher.leaf(d1), hasher.leaf(d2)
        p0 = hasher.node(l0, l1)
        p1 = hasher.node(l2, b"")
        root = hasher.node(p0, p1)

        assert nodes.nodes == {
            (0, 0): l0,
            (0, 1): l1,
            (0, 2): l2,
            (1, 0): p0,
            (1, 1): p1,
            (2, 0): root,
        }
        assert p1 != hasher.node(l2, l2)

    def test_single_document_leaf_is_root(self, hasher):
        nodes = InMemoryNodeStore()
        descriptor = TreeBuilder(hasher, InMemoryDocumentStore([b"only"]), nodes).build(1)

        assert descriptor.max_layer == 0
        assert nodes.nodes == {(0, 0): hasher.leaf(b"only")}

    def test_build_is_idempotent(self, hasher):
        documents = InMemoryDocumentStore(make_documents(11))
        first = InMemoryNodeStore()
        second = InMemoryNodeStore()
        TreeBuilder(hasher, documents, first).build(11)
        TreeBuilder(hasher, documents, second).build(11)
        TreeBuilder(hasher, documents, second).build(11)

        assert first.nodes == second.nodes

    def test_missing_document_raises(self, hasher):
        builder = TreeBuilder(hasher, InMemoryDocumentStore(make_documents(3)), InMemoryNodeStore())
        with pytest.raises(StoreError):
            builder.build(4)

    def test_rebuild_smaller_ignores_stale_nodes(self, hasher):
        """Nodes beyond a layer's length are never read as right children."""
        documents = make_documents(8)
        nodes = InMemoryNodeStore()
        TreeBuilder(hasher, InMemoryDocumentStore(documents), nodes).build(8)
        descriptor = TreeBuilder(hasher, InMemoryDocumentStore(documents), nodes).build(5)

        assert nodes.get(descriptor.max_layer, 0) == reference_root(documents[:5])

    def test_missing_left_child_is_corruption(self, hasher):
        class DroppingStore(InMemoryNodeStore):
            def put(self, layer: int, index: int, value: bytes) -> None:
                if (layer, index) != (0, 2):
                    super().put(layer, index, value)

        builder = TreeBuilder(hasher, InMemoryDocumentStore(make_documents(4)), DroppingStore())
        with pytest.raises(CorruptedStoreError) as excinfo:
            builder.build(4)
        assert (excinfo.value.layer, excinfo.value.index) == (0, 2)


class TestIncrementalUpdater:
    """Tests for appending one document."""

    @pytest.mark.parametrize("n", range(0, 34))
    def test_append_matches_rebuild(self, hasher, n: int):
        """build(n) followed by add_doc(n) equals build(n + 1)."""
        documents = InMemoryDocumentStore(make_documents(n + 1))

        rebuilt = InMemoryNodeStore()
        TreeBuilder(hasher, documents, rebuilt).build(n + 1)

        appended = InMemoryNodeStore()
        descriptor = TreeBuilder(hasher, documents, appended).build(n)
        root = IncrementalUpdater(hasher, documents, appended).add_doc(descriptor, n)

        assert descriptor == TreeDescriptor.new(n + 1)
        assert root == rebuilt.get(descriptor.max_layer, 0)
        for i in range(descriptor.max_layer + 1):
            for j in range(descriptor.layer_len(i)):
                assert appended.get(i, j) == rebuilt.get(i, j), (i, j)

    def test_repeated_appends_from_empty(self, hasher):
        documents = make_documents(20)
        store = InMemoryDocumentStore(documents)
        nodes = InMemoryNodeStore()
        descriptor = TreeDescriptor.new(0)
        updater = IncrementalUpdater(hasher, store, nodes)

        for i in range(20):
            root = updater.add_doc(descriptor, i)
            assert root == reference_root(documents[: i + 1])

    def test_only_path_is_written(self, hasher):
        documents = InMemoryDocumentStore(make_documents(6))
        nodes = RecordingNodeStore()
        descriptor = TreeBuilder(hasher, documents, nodes).build(5)
        nodes.written.clear()

        IncrementalUpdater(hasher, documents, nodes).add_doc(descriptor, 5)

        assert sorted(nodes.written) == [(0, 5), (1, 2), (2, 1), (3, 0)]

    def test_crossing_power_of_two_adds_layer(self, hasher):
        documents = InMemoryDocumentStore(make_documents(5))
        nodes = InMemoryNodeStore()
        descriptor = TreeBuilder(hasher, documents, nodes).build(4)
        old_root = nodes.get(2, 0)

        root = IncrementalUpdater(hasher, documents, nodes).add_doc(descriptor, 4)

        assert descriptor.max_layer == 3
        new_leaf_path = hasher.node(hasher.node(hasher.leaf(documents.get(4)), b""), b"")
        assert root == hasher.node(old_root, new_leaf_path)

    def test_path_committed_as_one_batch(self, hasher):
        class BatchRecordingStore(InMemoryNodeStore):
            def __init__(self) -> None:
                super().__init__()
                self.batches: list[list[tuple[int, int]]] = []

            def put_many(self, entries) -> None:
                self.batches.append([(layer, index) for layer, index, _ in entries])
                super().put_many(entries)

        documents = InMemoryDocumentStore(make_documents(8))
        nodes = BatchRecordingStore()
        descriptor = TreeBuilder(hasher, documents, nodes).build(7)

        IncrementalUpdater(hasher, documents, nodes).add_doc(descriptor, 7)

        assert len(nodes.batches) == 1
        assert sorted(nodes.batches[0]) == [(0, 7), (1, 3), (2, 1), (3, 0)]

    def test_missing_left_node_is_corruption(self, hasher):
        documents = InMemoryDocumentStore(make_documents(4))
        nodes = InMemoryNodeStore()
        descriptor = TreeBuilder(hasher, documents, nodes).build(3)
        del nodes.nodes[(0, 2)]

        with pytest.raises(CorruptedStoreError):
            IncrementalUpdater(hasher, documents, nodes).add_doc(descriptor, 3)
        assert descriptor.n == 3

    def test_failed_append_leaves_store_untouched(self, hasher):
        documents = InMemoryDocumentStore(make_documents(3))
        nodes = InMemoryNodeStore()
        descriptor = TreeBuilder(hasher, documents, nodes).build(3)
        before = dict(nodes.nodes)

        with pytest.raises(StoreError):
            IncrementalUpdater(hasher, documents, nodes).add_doc(descriptor, 3)

        assert nodes.nodes == before
        assert descriptor.n == 3


class TestDocumentTree:
    """Tests for the tree facade over in-memory stores."""

    def test_build_writes_summary(self, memory_tree):
        tree = memory_tree(4)
        root = tree.build(4)

        assert tree.elements == 4
        assert tree.summaries.read().startswith("MerkleTree:blake3:3C3C3C3C:F5F5F5F5:4:3:")
        assert root == reference_root(make_documents(4))

    def test_build_requires_documents(self, memory_tree):
        with pytest.raises(InvalidIndexError, match="greater than 0"):
            memory_tree(1).build(0)

    def test_add_requires_next_index(self, memory_tree):
        tree = memory_tree(5)
        tree.build(3)
        nodes_before = dict(tree.nodes.nodes)

        with pytest.raises(InvalidIndexError, match="expected: 3"):
            tree.add_doc(4)
        assert tree.nodes.nodes == nodes_before

    def test_add_to_empty_tree(self, memory_tree):
        tree = memory_tree(2)
        assert tree.load() is False

        tree.add_doc(0)
        tree.add_doc(1)

        assert tree.root() == reference_root(make_documents(2))

    def test_resume_from_summary(self, memory_tree):
        tree = memory_tree(6)
        tree.build(5)
        tree.descriptor = TreeDescriptor.new(0)

        assert tree.load() is True
        assert tree.descriptor == TreeDescriptor.new(5)
        tree.add_doc(5)
        assert tree.root() == reference_root(make_documents(6))

    def test_summary_identical_after_rebuild(self, memory_tree):
        tree = memory_tree(9)
        tree.build(9)
        first = tree.summaries.read()
        tree.build(9)

        assert tree.summaries.read() == first

    def test_incremental_summary_matches_rebuild(self, memory_tree):
        rebuilt = memory_tree(10)
        rebuilt.build(10)

        appended = memory_tree(10)
        appended.build(9)
        appended.add_doc(9)

        assert appended.summaries.read() == rebuilt.summaries.read()

    def test_check_detects_tampered_node(self, memory_tree):
        tree = memory_tree(4)
        tree.build(4)
        assert tree.check().ok

        tree.nodes.put(1, 1, b"\x00" * 32)
        del tree.nodes.nodes[(0, 3)]
        result = tree.check()

        assert not result.ok
        assert result.mismatched == [(1, 1)]
        assert result.missing == [(0, 3)]

    def test_header_without_summary_raises(self, memory_tree):
        with pytest.raises(StoreError, match="No tree found"):
            memory_tree(1).header()


def test_node_store_default_put_many():
    """put_many on a plain store writes every entry."""

    class PlainStore(NodeStore):
        def __init__(self) -> None:
            self.data: dict[tuple[int, int], bytes] = {}

        def get(self, layer, index):
            return self.data.get((layer, index))

        def put(self, layer, index, value):
            self.data[(layer, index)] = value

    store = PlainStore()
    store.put_many([(0, 0, b"a"), (1, 0, b"b")])
    assert store.data == {(0, 0): b"a", (1, 0): b"b"}
