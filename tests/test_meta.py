import json
import pytest
from dbcopy.errors import EntityNotFoundError, SchemaError
from dbcopy.meta.json_io import from_dict, to_json_file, from_json_file, list_from_json_file
from dbcopy.meta.model import ModelMeta, ParamMeta
from dbcopy.meta.run import DescrNote, LangMeta, RunMeta


def test_model_json_roundtrip(model, tmp_path):
    path = to_json_file(tmp_path / "M.model.json", model)
    loaded = from_json_file(path, ModelMeta)
    assert loaded == model
    assert loaded.type_by_id(3).code_map(True) == {0: "Young", 1: "Old", 2: "all"}

def test_note_none_and_empty_kept(tmp_path):
    run = RunMeta(run_id=1, name="Default", txt=[
        DescrNote(lang_code="EN", note=None), DescrNote(lang_code="FR", note=""),
    ])
    path = to_json_file(tmp_path / "M.run.Default.json", run)
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    assert [t["note"] for t in data["txt"]] == [None, ""]
    assert from_json_file(path, RunMeta).txt == run.txt

def test_wrong_value_types():
    data = {
        "param_id": "abc", "name": 5, "type_id": None,
        "dims": [{"dim_id": "x", "name": None, "type_id": "y"}],
    }
    with pytest.raises(SchemaError) as e:
        from_dict(ParamMeta, data)
    assert "ParamMeta" in str(e.value)

def test_unknown_key_rejected():
    with pytest.raises(SchemaError):
        from_dict(ParamMeta, {"param_id": 0, "name": "Age", "type_id": 1, "rank": 1})

def test_missing_required_key():
    with pytest.raises(SchemaError):
        from_dict(RunMeta, {"name": "Default"})

def test_not_an_object():
    with pytest.raises(SchemaError):
        from_dict(RunMeta, ["Default"])

def test_invalid_json_file(tmp_path):
    path = tmp_path / "M.model.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(SchemaError):
        from_json_file(path, ModelMeta)

def test_missing_json_file(tmp_path):
    with pytest.raises(EntityNotFoundError):
        from_json_file(tmp_path / "M.model.json", ModelMeta)

def test_list_from_json_file(tmp_path):
    langs = [LangMeta(lang_id=0, code="EN", name="English", words={"all": "All"})]
    path = to_json_file(tmp_path / "M.lang.json", langs)
    assert list_from_json_file(path, LangMeta) == langs

    path.write_text('{"lang_id": 0}', encoding="utf-8")
    with pytest.raises(SchemaError):
        list_from_json_file(path, LangMeta)
