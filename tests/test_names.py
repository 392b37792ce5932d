import logging
import pytest
from dbcopy.errors import EntityNotFoundError, ResolutionError, SchemaError, ValidationError
from dbcopy.text.names import (
    IdNamePolicy, EntityLocator, SET, RUN, clean_path, detect_conflicts, make_slug, scope_slugs,
    entity_dir_name, metadata_file_name, sibling_dir, resolve_entity, list_metadata_files,
)


def test_clean_path():
    assert clean_path('a/b\\c:d*e?f"g') == "a_b_c_d_e_f_g"
    assert clean_path("Base") == "Base"

def test_policy_from_option():
    assert IdNamePolicy.from_option("yes") is IdNamePolicy.ALWAYS
    assert IdNamePolicy.from_option("no") is IdNamePolicy.NEVER
    assert IdNamePolicy.from_option("default") is IdNamePolicy.ON_CONFLICT
    assert IdNamePolicy.from_option(None) is IdNamePolicy.ON_CONFLICT
    with pytest.raises(ValueError):
        IdNamePolicy.from_option("sometimes")

def test_two_base_worksets_get_ids():
    locs = [EntityLocator(SET, 1, "Base"), EntityLocator(SET, 2, "Base"), EntityLocator(SET, 3, "Other")]
    assert detect_conflicts(locs) == {1, 2}
    assert scope_slugs(locs, IdNamePolicy.ON_CONFLICT) == {1: "1.Base", 2: "2.Base", 3: "Other"}

def test_single_base_workset_no_id():
    locs = [EntityLocator(SET, 5, "Base")]
    assert scope_slugs(locs, IdNamePolicy.ON_CONFLICT) == {5: "Base"}

def test_plain_name_equal_to_id_slug():
    locs = [EntityLocator(RUN, 12, "Base"), EntityLocator(RUN, 13, "Base"), EntityLocator(RUN, 20, "12.Base")]
    slugs = scope_slugs(locs, IdNamePolicy.ON_CONFLICT)
    assert slugs == {12: "12.Base", 13: "13.Base", 20: "20.12.Base"}
    assert len(set(slugs.values())) == len(locs)

def test_never_policy_duplicate_names():
    locs = [EntityLocator(SET, 1, "Base"), EntityLocator(SET, 2, "Base")]
    with pytest.raises(SchemaError):
        scope_slugs(locs, IdNamePolicy.NEVER)
    assert scope_slugs(locs, IdNamePolicy.ALWAYS) == {1: "1.Base", 2: "2.Base"}

def test_conflict_after_clean_name():
    locs = [EntityLocator(RUN, 1, "a/b"), EntityLocator(RUN, 2, "a:b")]
    assert detect_conflicts(locs) == {1, 2}

def test_make_slug_policies():
    loc = EntityLocator(RUN, 12, "Default")
    assert make_slug(loc, IdNamePolicy.ALWAYS) == "12.Default"
    assert make_slug(loc, IdNamePolicy.NEVER, {12}) == "Default"
    assert make_slug(loc, IdNamePolicy.ON_CONFLICT, set()) == "Default"
    assert entity_dir_name(RUN, "12.Default") == "run.12.Default"
    assert metadata_file_name("M", RUN, "12.Default") == "M.run.12.Default.json"

def test_sibling_dir(tmp_path):
    assert sibling_dir(tmp_path / "M.run.12.Default.json", "M", RUN) == tmp_path / "run.12.Default"
    with pytest.raises(ValueError):
        sibling_dir(tmp_path / "M.set.Base.json", "M", RUN)

def test_resolve_name_to_id_from_directory(tmp_path):
    (tmp_path / "set.7.Default").mkdir()
    found = resolve_entity(tmp_path, "M", SET, name="Default")
    assert found.entity_id == 7
    assert found.name == "Default"
    assert found.csv_dir == tmp_path / "set.7.Default"
    assert found.json_path is None

def test_resolve_exact_name(tmp_path):
    (tmp_path / "M.set.Base.json").write_text("{}", encoding="utf-8")
    (tmp_path / "set.Base").mkdir()
    found = resolve_entity(tmp_path, "M", SET, name="Base")
    assert found.json_path == tmp_path / "M.set.Base.json"
    assert found.csv_dir == tmp_path / "set.Base"
    assert found.entity_id is None

def test_resolve_id_to_name_from_json(tmp_path):
    (tmp_path / "M.run.12.Default.json").write_text("{}", encoding="utf-8")
    (tmp_path / "run.12.Default").mkdir()
    found = resolve_entity(tmp_path, "M", RUN, entity_id=12)
    assert (found.entity_id, found.name) == (12, "Default")
    assert found.csv_dir == tmp_path / "run.12.Default"

def test_resolve_ambiguous_takes_first(tmp_path, caplog):
    (tmp_path / "set.9.Base").mkdir()
    (tmp_path / "set.10.Base").mkdir()
    with caplog.at_level(logging.WARNING):
        found = resolve_entity(tmp_path, "M", SET, name="Base")
    # sorted by file name
    assert found.entity_id == 10
    assert "multiple" in caplog.text

def test_resolve_not_found(tmp_path):
    (tmp_path / "set.7.Default").mkdir()
    with pytest.raises(EntityNotFoundError) as e:
        resolve_entity(tmp_path, "M", SET, name="Missing")
    assert isinstance(e.value, ResolutionError)
    assert not isinstance(e.value, ValidationError)

def test_list_metadata_files(tmp_path):
    for name in ("M.run.b.json", "M.run.a.json", "M.set.a.json", "N.run.a.json"):
        (tmp_path / name).write_text("{}", encoding="utf-8")
    assert [p.name for p in list_metadata_files(tmp_path, "M", RUN)] == ["M.run.a.json", "M.run.b.json"]
