"""Tests for JSON merge-patch semantics of the document store."""
import pytest

from docmaker.models.database_models import Document
from docmaker.services.document_store import (
    apply_data_patch,
    merge_patch,
    replace_data_key,
    set_pipeline_flag,
)


def test_merge_patch_nested_merge():
    target = {"a": {"b": 1, "c": 2}, "d": 3}
    result = merge_patch(target, {"a": {"c": 20, "e": 5}})
    assert result == {"a": {"b": 1, "c": 20, "e": 5}, "d": 3}


def test_merge_patch_null_deletes():
    assert merge_patch({"a": 1, "b": 2}, {"a": None}) == {"b": 2}


def test_merge_patch_lists_replace():
    assert merge_patch({"a": [1, 2, 3]}, {"a": [4]}) == {"a": [4]}


def test_merge_patch_does_not_mutate_inputs():
    target = {"a": {"b": 1}}
    patch = {"a": {"c": 2}}
    merge_patch(target, patch)
    assert target == {"a": {"b": 1}}
    assert patch == {"a": {"c": 2}}


def test_merge_patch_non_dict_patch_replaces():
    assert merge_patch({"a": 1}, [1, 2]) == [1, 2]


def test_apply_data_patch_reassigns_data():
    doc = Document(data={"x": {"y": 1}})
    before = doc.data
    apply_data_patch(doc, {"x": {"z": 2}})
    assert doc.data == {"x": {"y": 1, "z": 2}}
    assert doc.data is not before


def test_replace_data_key_drops_old_nested_keys():
    doc = Document(data={"_pipeline": {"foundation": {"old": True}, "batchResults": [1]}})
    replace_data_key(doc, "_pipeline", {"foundation": {"new": True}})
    assert doc.data["_pipeline"] == {"foundation": {"new": True}}


def test_set_pipeline_flag():
    doc = Document(data={})
    assert set_pipeline_flag(doc, "research", "pending") == {"research": "pending"}
    assert set_pipeline_flag(doc, "research", "complete") == {"research": "complete"}


def test_set_pipeline_flag_rejects_unknown_status():
    with pytest.raises(ValueError):
        set_pipeline_flag(Document(data={}), "research", "done")
