import json

import anyio
import pytest

from services.workers.graph.core.classifier import (
    DelegatedTaskClassifier,
    KeywordTaskClassifier,
    build_classifier,
    extract_questions_from_text,
    strip_code_fences,
)
from services.workers.graph.core.config import Settings
from services.workers.graph.core.errors import ClassificationError
from services.workers.graph.core.types import TaskIntent


def test_keyword_strategy_on_films_task():
    intent = KeywordTaskClassifier().classify_sync(
        "Scrape the highest-grossing films list. What is the correlation between Rank and Peak? "
        "Draw a scatterplot."
    )
    assert intent.data_source == "wikipedia"
    assert intent.analysis_type == "correlation"
    assert intent.visualization_needed is True
    assert intent.expected_output_format == "json_array"


def test_keyword_strategy_output_formats():
    classify = KeywordTaskClassifier().classify_sync
    assert classify("court data, respond with a JSON object").expected_output_format == "json_object"
    assert classify("return the plot as base64").expected_output_format == "base64_image"
    assert classify("base64 plot, answer as a JSON array").expected_output_format == "json_array"


def test_keyword_strategy_sources_and_types(films_task, court_task):
    classify = KeywordTaskClassifier().classify_sync
    court = classify(court_task)
    assert court.data_source == "court_data"
    assert court.expected_output_format == "json_object"
    assert court.visualization_needed is True

    upload = classify("Summarise the uploaded CSV")
    assert upload.data_source == "csv"
    assert upload.analysis_type == "statistical_summary"
    assert upload.visualization_needed is False

    assert classify("Chart the uploaded csv").analysis_type == "visualization"
    assert classify("How many rows are there?").data_source == "unknown"
    assert classify(films_task).analysis_type == "count"


def test_numbered_questions_are_extracted_in_order(films_task):
    assert extract_questions_from_text(films_task) == [
        "How many $2 bn movies were released before 2000?",
        "Which is the earliest film that grossed over $1.5 bn?",
        "What's the correlation between the Rank and Peak?",
    ]


def test_embedded_question_object_wins(court_task):
    questions = extract_questions_from_text(court_task)
    assert len(questions) == 3
    assert questions[0] == "Which high court disposed the most cases from 2019 - 2022?"
    assert questions[2].startswith("Plot the year")


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('{"a": 1}') == '{"a": 1}'


def test_delegated_strategy_parses_fenced_intent(make_generator):
    reply = "```json\n" + json.dumps(
        {
            "dataSource": "court_data",
            "analysisType": "regression",
            "expectedOutputFormat": "json_object",
            "visualizationNeeded": True,
            "questions": ["What is the slope?"],
            "statisticalOperations": ["regression"],
        }
    ) + "\n```"
    generator = make_generator([reply])
    intent = anyio.run(DelegatedTaskClassifier(generator).analyze, "anything")
    assert intent == TaskIntent(
        data_source="court_data",
        analysis_type="regression",
        expected_output_format="json_object",
        visualization_needed=True,
        questions=["What is the slope?"],
        statistical_operations=["regression"],
    )
    assert '"anything"' in generator.prompts[0]


def test_delegated_strategy_falls_back_on_malformed_output(make_generator):
    generator = make_generator(['{"dataSource": "mars"}', "not json at all"])
    intent = anyio.run(DelegatedTaskClassifier(generator).analyze, "Plot the highest-grossing films")
    assert intent.data_source == "wikipedia"
    assert intent.visualization_needed is True
    assert intent.questions == []


def test_delegated_strategy_falls_back_on_collaborator_error(make_generator):
    generator = make_generator([TimeoutError("slow"), ["unused"]])
    text = "Court judgments: 1. Which high court disposed the most cases?"
    intent = anyio.run(DelegatedTaskClassifier(generator).analyze, text)
    assert intent.data_source == "court_data"
    assert intent.questions == ["Which high court disposed the most cases?"]
    assert len(generator.prompts) == 1


def test_delegated_question_extraction(make_generator):
    generator = make_generator(['["First?", " ", "Second?"]'])
    questions = anyio.run(DelegatedTaskClassifier(generator).extract_questions, "text")
    assert questions == ["First?", "Second?"]


def test_parse_helpers_raise_classification_error():
    with pytest.raises(ClassificationError):
        DelegatedTaskClassifier.parse_intent('{"analysisType": "magic"}')
    with pytest.raises(ClassificationError):
        DelegatedTaskClassifier.parse_questions('{"not": "a list"}')


def test_build_classifier_selects_strategy(make_generator):
    assert isinstance(build_classifier(Settings()), KeywordTaskClassifier)
    assert isinstance(build_classifier(Settings(openai_api_key="k", disable_llm=True)), KeywordTaskClassifier)
    assert isinstance(build_classifier(Settings(), generator=make_generator([])), DelegatedTaskClassifier)
