"""
Tolerant parsing of model output into typed stage results.
"""

from llm import (
    EvaluationResult,
    ExtractionResult,
    FinalSummary,
    MatchSummary,
    ProjectEvaluationResult,
    RoleSuggestion,
    SkillScore,
    parse_json_response,
)
from llm.parsing import extract_json, remove_trailing_commas, strip_code_fences


def test_fenced_json_with_trailing_comma():
    text = '```json\n{"name": "Jane Doe", "skills": ["Python", "SQL",],}\n```'
    result = parse_json_response(text, ExtractionResult)

    assert result.fallback is False
    assert result.name == "Jane Doe"
    assert result.skills == ["Python", "SQL"]


def test_json_surrounded_by_prose():
    text = 'Sure! Here you go: {"suggested_roles": ["Data Engineer"], "seniority": "Senior"} Hope it helps.'
    result = parse_json_response(text, RoleSuggestion)
    assert result.suggested_roles == ["Data Engineer"]
    assert result.seniority == "Senior"


def test_trailing_comma_inside_string_is_kept():
    text = '{"a": ["x, ]",], "b": "y,}"}'

    assert remove_trailing_commas(text) == '{"a": ["x, ]"], "b": "y,}"}'
    assert extract_json(text) == {"a": ["x, ]"], "b": "y,}"}


def test_braces_inside_strings_do_not_break_extraction():
    text = 'Result: {"overall_summary": "Uses {templates} and [lists]", "recommendation": "yes"} end'
    result = parse_json_response(text, FinalSummary)
    assert result.overall_summary == "Uses {templates} and [lists]"
    assert result.recommendation == "YES"


def test_unterminated_fence():
    assert strip_code_fences('```json\n{"a": 1}') == '{"a": 1}'


def test_extract_json_returns_none_for_garbage():
    assert extract_json("no json here") is None
    assert extract_json("") is None
    assert extract_json(None) is None
    assert extract_json("{broken: ") is None


def test_unparseable_output_returns_default():
    result = parse_json_response("I cannot help with that.", ExtractionResult)
    assert result.fallback is True
    assert result.name == ""
    assert result.skills == []
    assert result.work_experience == []


def test_non_object_json_returns_default():
    result = parse_json_response('["a", "b"]', RoleSuggestion)
    assert result.fallback is True
    assert result.suggested_roles == []


def test_evaluation_default():
    result = parse_json_response("", EvaluationResult)
    assert result.fallback is True
    assert result.scores == {}
    assert result.feedback == "Unable to evaluate"


def test_evaluation_scores_are_normalized():
    text = """{"scores": {"technicalSkillsMatch": 4.5, "experienceLevel": "3",
    "culturalFit": 9, "aiExperience": "n/a", "relevant_achievements": -1}}"""
    result = parse_json_response(text, EvaluationResult)

    assert result.scores == {
        "technical_skills_match": 4.5,
        "experience_level": 3.0,
        "cultural_fit": 5.0,
        "relevant_achievements": 0.0,
    }


def test_invalid_recommendation_is_dropped():
    result = parse_json_response('{"overall_summary": "ok", "recommendation": "MAYBE"}', FinalSummary)
    assert result.fallback is False
    assert result.recommendation is None


def test_recommendation_label_is_normalized():
    result = parse_json_response('{"recommendation": "strong yes"}', FinalSummary)
    assert result.recommendation == "STRONG_YES"


def test_extraction_tolerates_nulls_and_lists():
    text = """{
      "name": null,
      "skills": "Python",
      "experiences": [
        {"company": "Acme", "position": null, "achievements": ["Shipped X", "Led Y"]}
      ]
    }"""
    result = parse_json_response(text, ExtractionResult)
    profile = result.to_profile()

    assert profile.name == ""
    assert profile.skills == ["Python"]
    assert profile.experience[0].company == "Acme"
    assert profile.experience[0].position == ""
    assert profile.experience[0].achievements == "Shipped X Led Y"


def test_match_summary_unwraps_summary_key():
    text = '{"summary": {"strengths": ["A"], "improvements": ["B"], "next_steps": ["C"]}}'
    result = parse_json_response(text, MatchSummary)
    assert (result.strengths, result.improvements, result.next_steps) == (["A"], ["B"], ["C"])


def test_skill_score_is_clamped():
    assert parse_json_response('{"score": 140}', SkillScore).score == 100.0
    assert parse_json_response('{"score": "high"}', SkillScore).score is None
    assert parse_json_response("", SkillScore).score is None


def test_project_evaluation_default_is_neutral():
    result = parse_json_response("Sorry, I cannot help with that.", ProjectEvaluationResult)
    assert result.fallback is True
    assert result.feedback == "Unable to evaluate"
    assert result.scores == {
        "correctness": 3.0,
        "code_quality": 3.0,
        "resilience": 3.0,
        "documentation": 3.0,
        "creativity": 3.0,
    }


def test_project_scores_are_clamped_to_one_through_five():
    text = '{"scores": {"codeQuality": 9, "resilience": 0, "documentation": "4"}, "strengths": "Tests"}'
    result = parse_json_response(text, ProjectEvaluationResult)
    assert result.scores == {"code_quality": 5.0, "resilience": 1.0, "documentation": 4.0}
    assert result.strengths == ["Tests"]
