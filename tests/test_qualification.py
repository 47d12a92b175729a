import json

import pytest

from leadcall.schemas.qualification import InterestLevel, TranscriptRole, TranscriptTurn
from leadcall.services.qualification import (
    DEFAULT_RULES,
    QualificationRules,
    extract_callback_time,
    load_rules,
    qualify_transcript,
    render_transcript,
)


def user(text):
    return {"role": "user", "text": text}


def agent(text):
    return {"role": "assistant", "text": text}


class TestRenderTranscript:
    def test_excludes_system_turns(self):
        rendered = render_transcript([
            {"role": "system", "text": "You are a sales agent"},
            agent("Hello"),
            user("Hi"),
        ])
        assert rendered == "assistant: Hello\nuser: Hi"

    def test_maps_provider_role_names(self):
        rendered = render_transcript([
            {"role": "MESSAGE_ROLE_AGENT", "text": "Hello"},
            {"role": "MESSAGE_ROLE_USER", "text": "Hi"},
            {"role": "MESSAGE_ROLE_TOOL_CALL", "text": None},
        ])
        assert rendered == "assistant: Hello\nuser: Hi"

    def test_skips_unknown_roles(self):
        assert render_transcript([{"role": "MESSAGE_ROLE_UNSPECIFIED", "text": "?"}, user("ok")]) == "user: ok"

    def test_accepts_turn_models(self):
        turns = [TranscriptTurn(role=TranscriptRole.USER, text="hello")]
        assert render_transcript(turns) == "user: hello"


class TestScheduling:
    def test_call_me_back_at(self):
        assert extract_callback_time("sure, call me back at 5pm tomorrow") == "5pm"

    def test_tomorrow_at_wins_over_later_patterns(self):
        assert extract_callback_time("tomorrow at 10:30 am please, call me at 4pm") == "10:30 am"

    def test_localized_pattern(self):
        assert extract_callback_time("6 mani... 6pm ku call pannunga") == "6pm"

    def test_no_time(self):
        assert extract_callback_time("call me later") is None


class TestQualifyTranscript:
    def test_not_interested(self):
        result = qualify_transcript([user("not interested, don't call")])
        assert result.interest_level is InterestLevel.NOT_INTERESTED
        assert result.follow_up_required is False
        assert result.notes == "Lead declined or asked not to be called"

    def test_callback_request_is_high_interest(self):
        result = qualify_transcript([user("Sure, call me back at 5pm tomorrow")])
        assert result.scheduled_time == "5pm"
        assert result.follow_up_required is True
        assert result.interest_level is InterestLevel.INTERESTED
        assert result.notes == "Callback requested: 5pm"

    def test_negative_beats_high_interest(self):
        result = qualify_transcript([user("Definitely sounds nice but I'm busy, stop calling")])
        assert result.interest_level is InterestLevel.NOT_INTERESTED

    @pytest.mark.parametrize("negative", DEFAULT_RULES.negative_keywords)
    @pytest.mark.parametrize("positive", ["very interested", "sign me up", "send details", "seri"])
    def test_every_negative_keyword_beats_enthusiasm(self, negative, positive):
        result = qualify_transcript([user(f"{positive} ... {negative}")])
        assert result.interest_level is InterestLevel.NOT_INTERESTED

    def test_callback_note_survives_negative_classification(self):
        result = qualify_transcript([user("call me back at 7pm, busy now")])
        assert result.interest_level is InterestLevel.NOT_INTERESTED
        assert result.scheduled_time == "7pm"
        assert result.follow_up_required is True
        assert result.notes == "Callback requested: 7pm"

    def test_high_interest_forces_follow_up(self):
        result = qualify_transcript([user("Please send details on WhatsApp")])
        assert result.interest_level is InterestLevel.INTERESTED
        assert result.follow_up_required is True
        assert result.notes == "High interest - schedule follow-up"

    def test_tanglish_high_interest(self):
        result = qualify_transcript([user("romba nalla iruku")])
        assert result.interest_level is InterestLevel.INTERESTED
        assert result.follow_up_required is True

    def test_moderate_interest_does_not_force_follow_up(self):
        result = qualify_transcript([user("How much does it cost?")])
        assert result.interest_level is InterestLevel.INTERESTED
        assert result.follow_up_required is False
        assert result.notes == "Moderate interest - may need nurturing"

    def test_long_conversation_without_signal_is_contacted(self):
        text = "We run a small bakery and the roof faces east. " * 4
        turns = [user(text[: 150 - len("user: ")])]
        result = qualify_transcript(turns)
        assert len(result.transcript) == 150
        assert result.interest_level is InterestLevel.CONTACTED
        assert result.follow_up_required is False
        assert result.notes == "Call completed - needs review"

    def test_short_inconclusive_call_is_contacted(self):
        result = qualify_transcript([agent("Hello?"), user("Hello")])
        assert result.interest_level is InterestLevel.CONTACTED
        assert result.notes == "Brief call - may have been missed/busy"

    def test_empty_transcript(self):
        result = qualify_transcript([])
        assert result.transcript == ""
        assert result.interest_level is InterestLevel.CONTACTED

    def test_matching_is_case_insensitive(self):
        result = qualify_transcript([user("NOT INTERESTED")])
        assert result.interest_level is InterestLevel.NOT_INTERESTED

    def test_system_prompt_keywords_are_ignored(self):
        turns = [{"role": "system", "text": "Never take no thanks for an answer"}, user("hello")]
        assert qualify_transcript(turns).interest_level is InterestLevel.CONTACTED

    def test_is_deterministic(self):
        turns = [agent("Would you like a quote?"), user("maybe, what is the rate")]
        assert qualify_transcript(turns) == qualify_transcript(turns)


class TestRules:
    def test_custom_threshold(self):
        rules = QualificationRules(conversation_threshold=10)
        result = qualify_transcript([user("We have a bakery")], rules)
        assert result.notes == "Call completed - needs review"

    def test_keywords_are_case_folded(self):
        rules = QualificationRules(negative_keywords=("Nahi Chahiye",))
        assert qualify_transcript([user("nahi chahiye")], rules).interest_level is InterestLevel.NOT_INTERESTED

    def test_pattern_without_group_is_rejected(self):
        with pytest.raises(ValueError):
            QualificationRules(schedule_patterns=(r"call later",))

    def test_load_rules_from_json(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"version": "test-1", "moderate_interest_keywords": ["quote"]}))
        rules = load_rules(path)
        assert rules.version == "test-1"
        assert rules.moderate_interest_keywords == ("quote",)
        # Unspecified sets keep their defaults
        assert rules.negative_keywords == DEFAULT_RULES.negative_keywords

    def test_load_rules_empty_path_returns_defaults(self):
        assert load_rules("") is DEFAULT_RULES
