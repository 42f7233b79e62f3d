"""Tests for the content gate and the quality classifier."""

import pytest

from src.models.retrieval import FailureKind, Tier
from src.utils.content_validator import (
    BoilerplateStripper,
    ContentGate,
    QualityClassifier,
    normalize_whitespace,
)

pytestmark = pytest.mark.unit

BODY_SENTENCE = (
    "The revival of Sweeney Todd moves with a wicked, brisk confidence and the "
    "cast sings the score as if it were written yesterday. "
)


def _body(repeats=20):
    return (BODY_SENTENCE * repeats).strip()


class TestContentGate:
    def test_accepts_full_article(self):
        text = _body()
        assert ContentGate().check(f"<p>{text}</p>", text).passed

    def test_challenge_text_is_blocked(self):
        text = "Access to this page has been denied. Please verify you are human."
        result = ContentGate().check("<html></html>", text)
        assert result.kind is FailureKind.BLOCKED

    def test_challenge_markup_on_short_page_is_blocked(self):
        raw = '<div id="px-captcha"></div>'
        text = "Loading the page, one moment while we get things ready for you " * 3
        result = ContentGate().check(raw, text)
        assert result.kind is FailureKind.BLOCKED
        assert "px-captcha" in result.reason

    def test_challenge_markup_ignored_on_long_article(self):
        text = _body(20)
        raw = f'<script src="https://www.google.com/recaptcha/api.js"></script><div class="g-recaptcha"></div><p>{text}</p>'
        assert ContentGate().check(raw, text).passed

    def test_short_paywall_stub_is_paywalled(self):
        text = (
            "The revival of Sweeney Todd moves with a wicked confidence. "
            "Subscribe to continue reading this review and get unlimited access."
        )
        result = ContentGate().check("<p></p>", text)
        assert result.kind is FailureKind.PAYWALLED

    def test_long_article_mentioning_subscribe_passes(self):
        text = _body(15) + " Subscribe to continue reading our other theater coverage."
        assert len(text) > 1000
        assert ContentGate().check("", text).passed

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "Too short to be a review.",
            "https://www.example.com/theater/2024/05/01/some-very-long-review-slug.html",
        ],
    )
    def test_implausible_content_is_garbage(self, text):
        assert ContentGate().check("", text).kind is FailureKind.GARBAGE

    def test_error_page_is_garbage(self):
        text = (
            "Page Not Found. Sorry, we couldn't find the page you are looking for. "
            "Try searching the site or head back to the home page for the latest."
        )
        result = ContentGate().check("", text)
        assert result.kind is FailureKind.GARBAGE
        assert "error/404" in result.reason

    def test_ad_blocker_message_is_garbage(self):
        text = (
            "We noticed you are using an ad blocker. Advertising revenue helps "
            "support our journalism, so please turn off your ad blocker to continue."
        )
        assert ContentGate().check("", text).kind is FailureKind.GARBAGE

    def test_navigation_junk_is_garbage(self):
        text = "\n".join(
            [
                "Home",
                "About",
                "Contact",
                "Skip to main content",
                "Search this site",
                "Related stories",
                "Trending now",
                "Latest news from the arts desk and more",
            ]
        )
        result = ContentGate().check("", text)
        assert result.kind is FailureKind.GARBAGE
        assert "navigation" in result.reason

    def test_free_trial_stub_is_paywalled(self):
        text = (
            "Start your free trial to read this review of Sweeney Todd "
            "and every other story we publish."
        )
        assert ContentGate().check("", text).kind is FailureKind.PAYWALLED

    def test_premium_prompt_on_short_page_is_garbage(self):
        text = _body(9) + " This is premium content reserved for our readers."
        assert 1000 < len(text) < 1500
        result = ContentGate().check("", text)
        assert result.kind is FailureKind.GARBAGE
        assert "paywall" in result.reason

    def test_film_coverage_is_garbage(self):
        text = (
            "Insidious: The Red Door is the latest horror film in the long-running "
            "franchise, following the Lambert family once more as they are pulled "
            "back into the Further. The jump scares are loud and frequent, the spirit "
            "world looks murkier than ever, and the whole thing runs out of ideas well "
            "before the final showdown. Fans of scary movies will find little new here."
        )
        result = ContentGate().check("", text)
        assert result.kind is FailureKind.GARBAGE
        assert "horror/film" in result.reason

    def test_theater_review_mentioning_horror_film_passes(self):
        text = _body(3) + " Its staging borrows freely from the horror film playbook."
        assert ContentGate().check("", text).passed


class TestBoilerplateStripper:
    def test_strips_trailing_share_and_related_blocks(self):
        text = (
            _body(3)
            + "\nShare full article\nMore from Theater\nRelated:\nAnother review"
        )
        assert BoilerplateStripper().strip(text) == _body(3)

    def test_phrase_mid_sentence_is_kept(self):
        text = _body(2) + " There is more from the ensemble than anyone expected."
        assert BoilerplateStripper().strip(text) == text

    def test_strip_is_idempotent(self):
        stripper = BoilerplateStripper()
        text = (
            _body(4)
            + "\nWhen we learn of a mistake, we acknowledge it.\nLearn more\nSee All"
        )
        once = stripper.strip(text)
        assert stripper.strip(once) == once

    def test_long_link_chain_is_stripped_in_one_call(self):
        stripper = BoilerplateStripper()
        text = "Review body ends here." + "\nLearn more\nSee All" * 15
        assert text.count("\n") > stripper.max_iterations

        once = stripper.strip(text)
        assert once == "Review body ends here."
        assert stripper.strip(once) == once

    def test_normalize_whitespace(self):
        assert normalize_whitespace("a  b\r\n\n\n\nc  ") == "a b\n\nc"


class TestQualityClassifier:
    def test_full_review(self, review_text):
        verdict = QualityClassifier().classify(review_text, "Hamlet")
        assert verdict.tier is Tier.FULL
        assert verdict.signals == []
        assert verdict.word_count > 300

    def test_paywall_tail_is_truncated(self):
        words = ("word " * 310).strip()
        text = (words + " " + "x" * (1800 - len(words) - 31)).strip()
        text = text + " Subscribe to continue reading."
        assert len(text) >= 1800
        verdict = QualityClassifier().classify(text, "")
        assert verdict.tier is Tier.TRUNCATED
        assert "has_paywall_text" in verdict.signals

    def test_ellipsis_ending_is_truncated(self):
        text = _body(20) + " And then the second act..."
        verdict = QualityClassifier().classify(text, "Sweeney Todd")
        assert verdict.tier is Tier.TRUNCATED
        assert "ends_with_ellipsis" in verdict.signals

    def test_shorter_than_excerpt_is_truncated(self):
        excerpt = BODY_SENTENCE * 3
        text = BODY_SENTENCE.strip()
        verdict = QualityClassifier().classify(text, "Sweeney Todd", excerpt=excerpt)
        assert verdict.tier is Tier.TRUNCATED

    def test_short_clean_text_is_excerpt(self):
        text = "A lean, witty staging of Sweeney Todd that earns every laugh."
        verdict = QualityClassifier().classify(text, "Sweeney Todd")
        assert verdict.tier is Tier.EXCERPT

    def test_missing_topic_keeps_long_text_partial(self):
        verdict = QualityClassifier().classify(_body(20), "Oklahoma")
        assert verdict.tier is Tier.PARTIAL

    def test_empty_text_is_missing(self):
        verdict = QualityClassifier().classify("   \n ", "Hamlet")
        assert verdict.tier is Tier.MISSING
        assert verdict.cleaned_text == ""

    def test_address_ending_explains_missing_punctuation(self):
        text = _body(20) + "\nAt the Lyceum Theater, 149 W. 45th St"
        verdict = QualityClassifier().classify(text, "Sweeney Todd")
        assert "no_ending_punctuation" not in verdict.signals
        assert verdict.tier is Tier.FULL

    @pytest.mark.parametrize(
        "ending",
        [
            "Directed by Sam Gold",
            "Running time: 2 hours 30 minutes",
            "Tickets: telecharge.com",
            "Through Jan. 5",
            "Box office: 212-239-6200",
        ],
    )
    def test_info_line_endings_are_legitimate(self, ending):
        verdict = QualityClassifier().classify(_body(20) + "\n" + ending, "Sweeney Todd")
        assert verdict.tier is Tier.FULL
        assert verdict.signals == []

    def test_credit_earlier_in_last_paragraph_does_not_excuse_cutoff(self):
        text = (
            _body(20)
            + "\n\nThe show, directed by Sam Gold, runs two hours and the cast was wonder"
        )
        verdict = QualityClassifier().classify(text, "Sweeney Todd")
        assert verdict.tier is Tier.TRUNCATED
        assert "possible_mid_word_cutoff" in verdict.signals

    def test_ticket_mention_in_single_paragraph_does_not_excuse_cutoff(self):
        text = _body(20) + " Tickets are scarce, and the lead actor gives a performa"
        assert "\n" not in text
        verdict = QualityClassifier().classify(text, "Sweeney Todd")
        assert verdict.tier is Tier.TRUNCATED
        assert "no_ending_punctuation" in verdict.signals

    def test_subtitled_topic_matches_main_title(self):
        sentence = (
            "Harry Potter and the Cursed Child remains a feat of stagecraft, with "
            "illusions that land and a company that commits to every beat. "
        )
        text = (sentence * 20).strip()
        verdict = QualityClassifier().classify(
            text, "Harry Potter and the Cursed Child: Parts One and Two"
        )
        assert verdict.tier is Tier.FULL

    def test_unpunctuated_lowercase_ending_is_truncated(self):
        text = _body(20) + " and the final scene simply tra"
        verdict = QualityClassifier().classify(text, "Sweeney Todd")
        assert verdict.tier is Tier.TRUNCATED
        assert "possible_mid_word_cutoff" in verdict.signals

    def test_boilerplate_is_removed_before_classifying(self, review_text):
        text = review_text + "\nAdvertisement\nSubscribe to our newsletter"
        verdict = QualityClassifier().classify(text, "Hamlet")
        assert verdict.tier is Tier.FULL
        assert "Advertisement" not in verdict.cleaned_text
