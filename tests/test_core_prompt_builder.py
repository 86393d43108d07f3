"""
Unit tests for prompt construction (prompt_builder.py).
"""
import pytest

from exam_generator.core.prompt_builder import build_prompt


@pytest.fixture
def neet_prompt(neet_protocol):
    resolved = neet_protocol.resolve("balanced", 10)
    return build_prompt(neet_protocol, resolved, "Cell: The Unit of Life", 10, 45)


@pytest.mark.unit
class TestBuildPrompt:
    """Test the generation instruction text."""

    def test_topic_and_counts(self, neet_prompt):
        assert '"Cell: The Unit of Life"' in neet_prompt
        assert "Generate exactly 10" in neet_prompt
        assert "45-question paper" in neet_prompt

    def test_exact_archetype_and_form_counts(self, neet_prompt):
        assert "**6 Direct Recall** (`directRecall`)" in neet_prompt
        assert "**5 Standard 4-Option MCQ**" in neet_prompt
        assert "**1 Assertion-Reason**" in neet_prompt

    def test_cognitive_load_section(self, neet_prompt):
        assert "Density mix: 4 low, 5 medium, 1 high." in neet_prompt
        assert "First 1 questions: WARM-UP ZONE" in neet_prompt
        assert "more than 2 high-density questions consecutively" in neet_prompt

    def test_protocol_without_high_density(self, registry):
        protocol = registry.lookup("REET Mains Level 2", "English Teaching Methods")
        prompt = build_prompt(protocol, protocol.resolve("balanced", 10), "Communicative Approach", 10, 10)

        assert "Density mix: 3 low, 7 medium, 0 high." in prompt
        assert "- NEVER write high-density questions." in prompt
        assert "consecutively" not in prompt
        assert "**Exception/Outlier Logic** archetype → STRONGLY prefer" in prompt

    def test_prohibitions_listed_verbatim(self, neet_protocol, neet_prompt):
        for rule in neet_protocol.prohibitions.rules:
            assert f"- {rule}" in neet_prompt

    def test_co_occurrence_rules(self, neet_prompt):
        assert "**Integrative/Multi-concept** archetype → MUST use" in neet_prompt
        assert "STRONGLY prefer Negative Phrasing" in neet_prompt

    def test_templates_follow_declared_forms(self, neet_prompt, reet_protocol):
        assert "### Match-the-Following Template" in neet_prompt
        assert "### Assertion-Reason Template" in neet_prompt

        reet_prompt = build_prompt(
            reet_protocol, reet_protocol.resolve("balanced", 20), "Learning Theories", 20, 20)
        assert "### Match-the-Following Template" in reet_prompt
        assert "### Assertion-Reason Template" not in reet_prompt
        assert "theoryAttribution" in reet_prompt

    def test_output_schema_lists_only_declared_categories(self, neet_prompt):
        assert '"directRecall" | "directApplication"' in neet_prompt
        assert "theoryAttribution" not in neet_prompt
