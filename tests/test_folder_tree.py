"""文件夹树构建的单元测试（纯内存，不依赖数据库）。"""

from types import SimpleNamespace

from app.packages.drive.services.folder_tree import build_forest


def _folder(id, parent, path):
    name = path.rsplit("/", 1)[-1]
    return SimpleNamespace(id=id, name=name, parent_folder_id=parent, path=path, key_prefix=path + "/")


def _collect_ids(nodes):
    out = []
    for node in nodes:
        out.append(node["id"])
        out.extend(_collect_ids(node["children"]))
    return out


def test_every_non_root_appears_once_under_its_parent():
    folders = [
        _folder("r", None, "u1/Root"),
        _folder("a", "r", "u1/Root/A"),
        _folder("b", "r", "u1/Root/B"),
        _folder("a1", "a", "u1/Root/A/1"),
        _folder("a2", "a", "u1/Root/A/2"),
    ]
    forest = build_forest(folders)
    tree = forest.to_dicts()

    assert [n["id"] for n in tree] == ["r"]
    assert sorted(_collect_ids(tree)) == sorted(f.id for f in folders)
    children = {n["id"]: [c["id"] for c in n["children"]] for n in tree[0]["children"]}
    assert children == {"a": ["a1", "a2"], "b": []}
    assert forest.cyclic == set()


def test_children_keep_input_order():
    folders = [
        _folder("r", None, "u1/Root"),
        _folder("z", "r", "u1/Root/z"),
        _folder("y", "r", "u1/Root/y"),
    ]
    tree = build_forest(folders).to_dicts()
    assert [c["id"] for c in tree[0]["children"]] == ["z", "y"]


def test_orphans_are_omitted():
    folders = [_folder("r", None, "u1/Root"), _folder("o", "missing", "u1/Root/o")]
    tree = build_forest(folders).to_dicts()
    assert _collect_ids(tree) == ["r"]


def test_cycle_terminates_and_excludes_members():
    folders = [
        _folder("r", None, "u1/Root"),
        _folder("a", "r", "u1/Root/a"),
        _folder("x", "y", "u1/Root/x"),
        _folder("y", "x", "u1/Root/y"),
        _folder("self", "self", "u1/Root/self"),
    ]
    forest = build_forest(folders)
    assert forest.cyclic == {"x", "y", "self"}
    assert sorted(_collect_ids(forest.to_dicts())) == ["a", "r"]
    assert forest.get("x") is None
    assert list(forest.descendants("x")) == []


def test_descendants_depth_first():
    folders = [
        _folder("r", None, "u1/Root"),
        _folder("a", "r", "u1/Root/a"),
        _folder("a1", "a", "u1/Root/a/1"),
        _folder("b", "r", "u1/Root/b"),
    ]
    forest = build_forest(folders)
    assert [n.id for n in forest.descendants("r")] == ["a", "a1", "b"]
    assert [n.id for n in forest.descendants("a1")] == []
