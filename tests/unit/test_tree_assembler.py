"""Tests for hierarchical assembly of flat node lists."""

from roadmap_app.services.tree_assembler import assemble_tree, flatten_tree, tree_shape


class FlatNode:
    def __init__(self, id, depth, position, parent=None):
        self.id = id
        self.depth = depth
        self.position = position
        self.prerequisites = [parent] if parent is not None else []

    def to_dict(self):
        return {'id': self.id}


def _sample():
    # 1
    # |- 2
    # |  `- 3
    # `- 4
    # 5
    return [
        FlatNode(1, 0, 0),
        FlatNode(2, 1, 1, parent=1),
        FlatNode(3, 2, 2, parent=2),
        FlatNode(4, 1, 3, parent=1),
        FlatNode(5, 0, 4),
    ]


def test_assembles_nested_tree_in_position_order():
    roots = assemble_tree(reversed(_sample()))
    assert tree_shape(roots) == [
        (1, [(2, [(3, [])]), (4, [])]),
        (5, []),
    ]


def test_flatten_round_trip():
    nodes = _sample()
    assert [n.id for n in flatten_tree(assemble_tree(nodes))] == [n.id for n in nodes]


def test_to_dict_nests_children():
    roots = assemble_tree(_sample())
    assert roots[0].to_dict()['children'][0] == {'id': 2, 'children': [{'id': 3, 'children': []}]}


def test_depth_jump_is_not_attached():
    nodes = [FlatNode(1, 0, 0), FlatNode(2, 2, 1, parent=1)]
    assert tree_shape(assemble_tree(nodes)) == [(1, [])]


def test_cycles_and_self_references_terminate():
    nodes = [
        FlatNode(1, 0, 0),
        FlatNode(2, 1, 1, parent=3),
        FlatNode(3, 1, 2, parent=2),
        FlatNode(4, 1, 3, parent=4),
    ]
    assert tree_shape(assemble_tree(nodes)) == [(1, [])]


def test_dangling_parent_is_skipped():
    nodes = [FlatNode(1, 0, 0), FlatNode(2, 1, 1, parent=99)]
    assert tree_shape(assemble_tree(nodes)) == [(1, [])]


def test_empty():
    assert assemble_tree([]) == []
    assert flatten_tree([]) == []
