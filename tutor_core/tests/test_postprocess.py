import pytest

from tutor_core.postprocess.processor import ResponsePostProcessor

processor = ResponsePostProcessor()

SAMPLES = [
    "plain answer",
    "<think>let me work it out</think>\n\nThe answer is **42**.",
    "Reasoning: add the numbers\nAnswer: 4",
    "#Intro\n* one\n• two\n+ three\n\n\n\n5. first\n9. second\n\nDone.   ",
    "```python\n*   keep\n\n\n\nx = 1   \n```\n####Title",
    "***bold*** text\n````js\ncode\n````\n1) a\n1) b\nbreak\n7. c",
    "- a\n  * nested\n---\n/^\\s*$/gm\nend",
    "\r\n\r\n[thinking]hidden[/thinking]Hello  \r\n",
    "/^\\s*$/gm\nReasoning: add 2 and 2\nAnswer: 4",
    "Reasoning: first\nAnswer: Reasoning: second\nAnswer: 4",
    "\n\n/^a$/\n\nThought process: hmm\nFinal answer:\n<think>x</think>\n* done",
    "2024. That was the year we moved.\n1999. Another",
]


@pytest.mark.parametrize("raw", SAMPLES)
def test_process_is_idempotent(raw):
    once = processor.process(raw)
    twice = processor.process(once.visible_text)
    assert twice.visible_text == once.visible_text
    assert twice.reasoning_text is None


def test_full_equality_without_reasoning():
    raw = "#Steps\n* mix\n* bake\n\n\n\n3. eat"
    once = processor.process(raw)
    assert processor.process(once.visible_text) == once


def test_think_block_is_split_out():
    result = processor.process("<think>\nfirst add 2 and 2\n</think>\nThe sum is 4.")
    assert result.visible_text == "The sum is 4."
    assert result.reasoning_text == "first add 2 and 2"


def test_multiple_reasoning_segments_are_joined():
    result = processor.process("<thinking>a</thinking>x [thinking]b[/thinking]y")
    assert result.visible_text == "x y"
    assert result.reasoning_text == "a\n\nb"


def test_reasoning_answer_prefix():
    result = processor.process("Reasoning: the area is base times height over two.\nAnswer: 6 square units")
    assert result.visible_text == "6 square units"
    assert result.reasoning_text == "the area is base times height over two."


def test_reasoning_prefix_without_answer_is_kept():
    result = processor.process("Reasoning: just talking")
    assert result.visible_text == "Reasoning: just talking"
    assert result.reasoning_text is None


def test_unclosed_tag_is_stripped():
    assert processor.process("</think>Final answer").visible_text == "Final answer"


def test_markup_normalisation():
    raw = "#Heading\n* alpha\n• beta\n– gamma\n***strong***\n\n\n\nend   "
    assert processor.process(raw).visible_text == "# Heading\n- alpha\n- beta\n- gamma\n**strong**\n\nend"


def test_numbered_lists_are_renumbered_and_reset():
    raw = "1. a\n1. b\n\n4) c\nparagraph\n3. d\n    indented\n8. e"
    assert processor.process(raw).visible_text == "1. a\n2. b\n\n3. c\nparagraph\n1. d\n    indented\n2. e"


def test_code_fences_are_untouched():
    raw = "text\n````py\n*  x = 1   \n\n\n\n#comment\n````\n#After"
    result = processor.process(raw).visible_text
    assert result == "text\n```py\n*  x = 1   \n\n\n\n#comment\n```\n# After"


def test_horizontal_rule_and_regex_artefact():
    assert processor.process("a\n* * *\n/^[a-z]+$/gi\nb").visible_text == "a\n* * *\nb"


def test_empty_input():
    result = processor.process(None)
    assert result.visible_text == ""
    assert result.reasoning_text is None


def test_reasoning_exposed_by_normalisation_is_split():
    result = processor.process("/^\\s*$/gm\nReasoning: add 2 and 2\nAnswer: 4")
    assert result.visible_text == "4"
    assert result.reasoning_text == "add 2 and 2"


def test_stacked_reasoning_prefixes():
    result = processor.process("Reasoning: first\nAnswer: Reasoning: second\nAnswer: 4")
    assert result.visible_text == "4"
    assert result.reasoning_text == "first\n\nsecond"


def test_years_are_not_renumbered():
    raw = "2024. That was the year we moved.\n1999. Another"
    assert processor.process(raw).visible_text == raw
    assert processor.process("10. ten\n11. eleven").visible_text == "1. ten\n2. eleven"
