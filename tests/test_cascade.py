"""元数据级联更新的测试：直接操作数据库会话。"""

from sqlalchemy.exc import SQLAlchemyError

from app.packages.drive.crud.file_record import file_record_crud
from app.packages.drive.crud.folder import folder_crud
from app.packages.drive.services.cascade import cascade


def _mk(db, name, parent=None, user_id="u1"):
    if parent is None:
        prefix, path = f"{user_id}/{name}/", f"{user_id}/{name}"
    else:
        prefix, path = f"{parent.key_prefix}{name}/", f"{parent.path}/{name}"
    return folder_crud.create(
        db,
        {
            "name": name,
            "user_id": user_id,
            "parent_folder_id": parent.id if parent else None,
            "key_prefix": prefix,
            "path": path,
            "is_root": parent is None,
        },
    )


def _file(db, folder, name):
    return file_record_crud.create(
        db,
        {"user_id": folder.user_id, "folder_id": folder.id, "name": name, "key": folder.key_prefix + name, "size": 1},
    )


def _rename(db, folder, new_name):
    old_prefix, old_path = folder.key_prefix, folder.path
    new_prefix = old_prefix[: -len(folder.name) - 1] + new_name + "/"
    new_path = old_path[: -len(folder.name)] + new_name
    folder_crud.update(db, folder, {"name": new_name, "key_prefix": new_prefix, "path": new_path})
    return cascade(
        db,
        folder_id=folder.id,
        old_prefix=old_prefix,
        new_prefix=new_prefix,
        old_path=old_path,
        new_path=new_path,
    )


def test_cascade_rewrites_descendants_and_files(db_session_fixture):
    db = db_session_fixture
    root = _mk(db, "Root")
    notes = _mk(db, "Notes", root)
    year = _mk(db, "2024", notes)
    deep = _mk(db, "Notes", year)  # 与祖先同名的子文件夹
    f1 = _file(db, notes, "a.txt")
    f2 = _file(db, deep, "b.txt")
    sibling = _mk(db, "Notes2", root)

    result = _rename(db, notes, "Archive")

    assert result.ok
    assert sorted(result.updated_folders) == sorted([year.id, deep.id])
    db.expire_all()
    assert folder_crud.get(db, year.id).key_prefix == "u1/Root/Archive/2024/"
    assert folder_crud.get(db, year.id).path == "u1/Root/Archive/2024"
    assert folder_crud.get(db, deep.id).key_prefix == "u1/Root/Archive/2024/Notes/"
    assert folder_crud.get(db, deep.id).path == "u1/Root/Archive/2024/Notes"
    assert file_record_crud.get(db, f1.id).key == "u1/Root/Archive/a.txt"
    assert file_record_crud.get(db, f2.id).key == "u1/Root/Archive/2024/Notes/b.txt"
    assert folder_crud.get(db, sibling.id).key_prefix == "u1/Root/Notes2/"


def test_cascade_rerun_is_a_no_op(db_session_fixture):
    db = db_session_fixture
    root = _mk(db, "Root")
    notes = _mk(db, "Notes", root)
    _mk(db, "2024", notes)

    _rename(db, notes, "Archive")
    again = cascade(
        db,
        folder_id=notes.id,
        old_prefix="u1/Root/Notes/",
        new_prefix="u1/Root/Archive/",
        old_path="u1/Root/Notes",
        new_path="u1/Root/Archive",
    )

    assert again.ok
    assert again.updated_folders == []
    assert again.updated_files == []


def test_cascade_failure_is_recorded_and_siblings_continue(db_session_fixture, monkeypatch):
    db = db_session_fixture
    root = _mk(db, "Root")
    notes = _mk(db, "Notes", root)
    bad = _mk(db, "bad", notes)
    bad_child = _mk(db, "inner", bad)
    good = _mk(db, "good", notes)

    original_update = folder_crud.update

    def flaky_update(session, db_obj, patch, **kwargs):
        if db_obj.id == bad.id and "key_prefix" in patch:
            raise SQLAlchemyError("injected")
        return original_update(session, db_obj, patch, **kwargs)

    monkeypatch.setattr(folder_crud, "update", flaky_update)
    old_prefix, old_path = notes.key_prefix, notes.path
    original_update(db, notes, {"name": "Archive", "key_prefix": "u1/Root/Archive/", "path": "u1/Root/Archive"})
    result = cascade(
        db,
        folder_id=notes.id,
        old_prefix=old_prefix,
        new_prefix="u1/Root/Archive/",
        old_path=old_path,
        new_path="u1/Root/Archive",
    )

    assert not result.ok
    assert [f.id for f in result.failures] == [bad.id]
    assert result.updated_folders == [good.id]
    db.expire_all()
    # 失败节点的子树保持原状，等待重试
    assert folder_crud.get(db, bad_child.id).key_prefix == "u1/Root/Notes/bad/inner/"

    monkeypatch.setattr(folder_crud, "update", original_update)
    retry = cascade(
        db,
        folder_id=notes.id,
        old_prefix=old_prefix,
        new_prefix="u1/Root/Archive/",
        old_path=old_path,
        new_path="u1/Root/Archive",
    )
    assert retry.ok
    assert sorted(retry.updated_folders) == sorted([bad.id, bad_child.id])
    db.expire_all()
    assert folder_crud.get(db, bad_child.id).path == "u1/Root/Archive/bad/inner"


def test_cascade_rewrites_soft_deleted_records(db_session_fixture):
    db = db_session_fixture
    root = _mk(db, "Root")
    notes = _mk(db, "Notes", root)
    old = _mk(db, "Old", notes)
    trashed = _file(db, old, "gone.txt")
    folder_crud.update(db, old, {"is_deleted": True})
    file_record_crud.update(db, trashed, {"is_deleted": True})

    result = _rename(db, notes, "Archive")

    assert result.ok
    assert result.updated_folders == [old.id]
    assert result.updated_files == [trashed.id]
    db.expire_all()
    old_row = folder_crud.query(db, include_deleted=True).filter_by(id=old.id).one()
    assert old_row.key_prefix == "u1/Root/Archive/Old/"
    assert old_row.path == "u1/Root/Archive/Old"
    file_row = file_record_crud.query(db, include_deleted=True).filter_by(id=trashed.id).one()
    assert file_row.key == "u1/Root/Archive/Old/gone.txt"
