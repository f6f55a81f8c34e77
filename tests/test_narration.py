from learnit.models import (
    FillInBlanksQuestion,
    Flashcard,
    MatchingPair,
    MatchingQuestion,
    MultipleChoiceQuestion,
    QuestionSet,
    TrueFalseQuestion,
)
from learnit.narration import PAUSE_SECONDS, build_narration, estimate_seconds, option_label


def sample_set():
    return QuestionSet(
        flashcards=[Flashcard(question="What is osmosis?", answer="Water diffusion.")],
        mcqs=[
            MultipleChoiceQuestion(
                question="Which organelle makes proteins?",
                options=["Nucleus", "Ribosome", "Vacuole"],
                correct_answer="Ribosome",
            )
        ],
        true_false_questions=[
            TrueFalseQuestion(statement="Enzymes are consumed.", is_true=False, explanation="They are reused.")
        ],
        fill_in_blanks_questions=[
            FillInBlanksQuestion(
                text_with_blanks="[BLANK_0] absorbs light.",
                blanks=["Chlorophyll"],
                complete_text="Chlorophyll absorbs light.",
            )
        ],
        matching_questions=[
            MatchingQuestion(pairs=[MatchingPair(left="DNA", right="Genetic code")])
        ],
    )


def test_sections_in_order():
    script = build_narration(sample_set(), "Biology")
    sections = [s.section for s in script.segments]

    assert sections[0] == "intro"
    assert sections[-1] == "outro"
    order = ["flashcards", "mcqs", "true_false", "fill_in_blanks", "matching"]
    firsts = [sections.index(name) for name in order]
    assert firsts == sorted(firsts)


def test_script_text():
    script = build_narration(sample_set(), "Biology")
    texts = [s.text for s in script.segments]

    assert "Biology" in texts[0]
    assert "5 questions" in texts[0]
    assert "The correct answer is B: Ribosome." in texts
    assert "False. They are reused." in texts
    assert "Fill in the blanks, item 1. blank absorbs light." in texts


def test_timing():
    script = build_narration(sample_set(), "Biology")
    question = next(s for s in script.segments if s.section == "flashcards")

    assert question.estimated_seconds == estimate_seconds(question.text) + PAUSE_SECONDS
    assert script.total_seconds == round(sum(s.estimated_seconds for s in script.segments), 1)


def test_estimate_seconds():
    assert estimate_seconds("") == 0
    assert estimate_seconds("one two three", words_per_minute=60) == round(3 / 54 * 60, 1)


def test_option_labels_run_past_z():
    assert [option_label(i) for i in range(3)] == ["A", "B", "C"]
    assert option_label(25) == "Z"
    assert option_label(26) == "AA"
    assert option_label(27) == "AB"
    assert option_label(26 * 27) == "AAA"


def test_narration_with_many_options():
    options = [f"choice {n}" for n in range(30)]
    questions = QuestionSet(
        mcqs=[MultipleChoiceQuestion(question="Pick", options=options, correct_answer="choice 29")]
    )
    script = build_narration(questions, "Long list")
    texts = [s.text for s in script.segments]
    assert "AD: choice 29." in texts[1]
    assert texts[2] == "The correct answer is AD: choice 29."
