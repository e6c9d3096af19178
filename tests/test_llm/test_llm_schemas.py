"""Tests for language-model response schemas."""

import pytest
from pydantic import ValidationError

from theme_engine.llm.schemas import CodeExtractionResponse, CodeSplitResponse, ThemeLabelResponse


class TestCodeExtractionResponse:
    def test_camel_case_aliases(self):
        response = CodeExtractionResponse.model_validate(
            {"codes": [{"sourceId": "s1", "label": "Remote work", "excerpts": ["Remote work reduced stress"]}]}
        )
        code = response.codes[0]
        assert code.source_id == "s1"
        assert code.description == ""
        assert code.excerpts == ["Remote work reduced stress"]

    def test_snake_case_accepted(self):
        response = CodeExtractionResponse.model_validate({"codes": [{"source_id": "s1", "label": "x"}]})
        assert response.codes[0].source_id == "s1"

    def test_missing_codes_defaults_empty(self):
        assert CodeExtractionResponse.model_validate({}).codes == []

    def test_empty_label_rejected(self):
        with pytest.raises(ValidationError):
            CodeExtractionResponse.model_validate({"codes": [{"sourceId": "s1", "label": ""}]})

    def test_extra_keys_ignored(self):
        response = CodeExtractionResponse.model_validate(
            {"codes": [{"sourceId": "s1", "label": "x", "confidence": 0.9}], "notes": "..."}
        )
        assert len(response.codes) == 1


class TestCodeSplitResponse:
    def test_parses_statements(self):
        response = CodeSplitResponse.model_validate(
            {
                "splits": [
                    {
                        "originalCodeId": "code_1",
                        "atomicStatements": [
                            {"label": "A", "description": "first", "groundingExcerpt": "text a"},
                            {"label": "B"},
                        ],
                    }
                ]
            }
        )
        split = response.splits[0]
        assert split.original_code_id == "code_1"
        assert [s.label for s in split.atomic_statements] == ["A", "B"]
        assert split.atomic_statements[0].grounding_excerpt == "text a"
        assert split.atomic_statements[1].grounding_excerpt == ""


class TestThemeLabelResponse:
    def test_parses_labels(self):
        response = ThemeLabelResponse.model_validate(
            {"themes": [{"clusterId": "cluster_1", "label": "Work-life balance", "description": "d"}]}
        )
        assert response.themes[0].cluster_id == "cluster_1"

    def test_overlong_label_rejected(self):
        with pytest.raises(ValidationError):
            ThemeLabelResponse.model_validate({"themes": [{"clusterId": "c", "label": "x" * 201}]})
