from __future__ import annotations

from typing import List

import pytest
from pydantic import BaseModel

from utils.llm_json import ReplyDecodeError, ReplyShapeError, iter_json_values, load_reply


class _Verdict(BaseModel):
    status: str


class _Batch(BaseModel):
    results: List[_Verdict]


def test_fenced_block_wins_over_prose_json() -> None:
    text = 'prefix {"status": "outside"}\n```json\n{"status": "inside"}\n```\n{tail}'

    assert load_reply(text, _Verdict).status == "inside"


def test_prose_json_is_used_when_code_blocks_are_ignored() -> None:
    text = '{"status": "first"}\n```json\n{"status": "fenced"}\n```'

    assert load_reply(text, _Verdict, prefer_code_block=False).status == "first"


def test_scan_skips_broken_braces_and_keeps_strings_intact() -> None:
    text = 'lead {not json} middle {"status": "brace { inside }"} tail'

    assert load_reply(text, _Verdict).status == "brace { inside }"


def test_values_that_do_not_fit_the_shape_are_skipped() -> None:
    text = '{"note": "thinking"} then {"status": "Conform"}'

    assert load_reply(text, _Verdict).status == "Conform"


def test_bare_array_is_read_as_batch_results() -> None:
    text = 'Results:\n[{"status": "Conform"}, {"status": "Not conform"}]'

    batch = load_reply(text, _Batch, list_key="results")

    assert [item.status for item in batch.results] == ["Conform", "Not conform"]


def test_bare_array_is_ignored_without_list_key() -> None:
    with pytest.raises(ReplyDecodeError):
        load_reply('[{"status": "Conform"}]', _Verdict)


def test_missing_json_raises_decode_error() -> None:
    with pytest.raises(ReplyDecodeError, match="No JSON object found"):
        load_reply("no json here", _Verdict)


def test_wrong_shape_raises_shape_error() -> None:
    with pytest.raises(ReplyShapeError, match="_Batch"):
        load_reply('{"results": "none"}', _Batch, list_key="results")


def test_iter_json_values_yields_top_level_values_only() -> None:
    values = list(iter_json_values('a [1, {"b": 2}] c {"d": [3]}', prefer_code_block=False))

    assert values == [[1, {"b": 2}], {"d": [3]}]
