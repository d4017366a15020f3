"""
Tests for segmentation, engagement scoring and interest inference.
"""
from datetime import datetime, timedelta

from db_models import Subscriber
from models import SegmentCriteria
from segmentation import (
    apply_activity,
    calculate_engagement_score,
    calculate_segment_size,
    empty_tracking_data,
    extract_topic_from_content,
    extract_topic_from_path,
    filter_subscribers,
    get_min_engagement_score,
    get_segmented_subscribers,
    infer_interests,
    subscriber_matches,
    track_subscriber_activity,
)

NOW = datetime(2026, 6, 1, 12, 0, 0)


def make_subscriber(email="a@example.com", **kwargs):
    return Subscriber(email=email, subscribed=True, **kwargs)


# =============================================================================
# Engagement score and interests
# =============================================================================

class TestEngagementScore:
    """Score = page views x1 + content interactions x2 + email interactions x3."""

    def test_weighted_sum(self):
        data = {
            "page_views": [{"path": "/a"}, {"path": "/b"}, {"path": "/c"}],
            "content_interactions": [{"content": "x-1"}, {"content": "y-2"}],
            "email_interactions": [{"email_id": "1", "action": "open"}],
        }
        assert calculate_engagement_score(data) == 10

    def test_empty_data_scores_zero(self):
        assert calculate_engagement_score(empty_tracking_data()) == 0
        assert calculate_engagement_score({}) == 0


class TestTopicExtraction:

    def test_topic_from_last_path_segment(self):
        assert extract_topic_from_path("/blog/health-tips") == "health"
        assert extract_topic_from_path("/blog/health-news/") == "health"

    def test_topic_from_full_url(self):
        assert extract_topic_from_path("https://example.com/articles/fitness-plan?x=1") == "fitness"

    def test_root_path_is_general(self):
        assert extract_topic_from_path("/") == "general"
        assert extract_topic_from_path("") == "general"

    def test_topic_from_content_id(self):
        assert extract_topic_from_content("fitness-1") == "fitness"
        assert extract_topic_from_content("recipes") == "recipes"


class TestInterestInference:

    def test_health_and_fitness_in_top_five(self):
        data = {
            "page_views": [{"path": "/blog/health-tips"}, {"path": "/blog/health-news"}],
            "content_interactions": [{"content": "fitness-1"}],
        }
        interests = infer_interests(data)
        assert "health" in interests
        assert "fitness" in interests
        assert len(interests) <= 5

    def test_content_weighs_more_than_page_view(self):
        data = {
            "page_views": [{"path": "/travel-guide"}],
            "content_interactions": [{"content": "cooking-9"}],
        }
        assert infer_interests(data)[0] == "cooking"

    def test_limited_to_five_topics(self):
        data = {"page_views": [{"path": f"/topic{i}-page"} for i in range(8)]}
        assert len(infer_interests(data)) == 5

    def test_ties_keep_first_seen_order(self):
        data = {"page_views": [{"path": "/b-1"}, {"path": "/a-1"}]}
        assert infer_interests(data) == ["b", "a"]


class TestApplyActivity:

    def test_appends_and_rescores(self):
        data = apply_activity(None, page_view="/blog/health-tips", timestamp="t")
        data = apply_activity(data, content_interaction="fitness-1", timestamp="t")
        data = apply_activity(data, email_interaction={"email_id": "3", "action": "open"}, timestamp="t")

        assert data["page_views"] == [{"path": "/blog/health-tips", "timestamp": "t"}]
        assert data["engagement_score"] == 1 + 2 + 3
        assert set(data["interests"]) == {"health", "fitness"}

    def test_does_not_mutate_input(self):
        original = empty_tracking_data()
        apply_activity(original, page_view="/x")
        assert original["page_views"] == []


# =============================================================================
# Matching engine
# =============================================================================

class TestSegmentMatching:
    """One engine for every criteria category."""

    def test_empty_criteria_matches_everyone(self):
        subscribers = [
            make_subscriber("a@example.com"),
            make_subscriber("b@example.com", demographic={"age_group": "45-54"}),
            make_subscriber("c@example.com", location={"country": "FR"}),
        ]
        assert filter_subscribers(subscribers, SegmentCriteria()) == subscribers

    def test_criteria_with_only_empty_fields_matches_everyone(self):
        subscribers = [make_subscriber("a@example.com"), make_subscriber("b@example.com")]
        criteria = SegmentCriteria(
            demographic={"age_groups": []},
            geographic={"country": []},
            email_engagement={"engagement_level": []},
        )
        assert filter_subscribers(subscribers, criteria) == subscribers

    def test_age_group(self):
        subscriber = make_subscriber(demographic={"age_group": "25-34"})

        assert subscriber_matches(subscriber, SegmentCriteria(demographic={"age_groups": ["25-34"]}))
        assert not subscriber_matches(subscriber, SegmentCriteria(demographic={"age_groups": ["35-44"]}))

    def test_or_within_a_field(self):
        subscriber = make_subscriber(location={"country": "UK"})
        assert subscriber_matches(subscriber, SegmentCriteria(geographic={"country": ["US", "UK"]}))

    def test_and_across_fields(self):
        subscriber = make_subscriber(
            demographic={"age_group": "25-34", "gender": "female"},
            location={"country": "UK"},
        )
        matching = SegmentCriteria(
            demographic={"age_groups": ["25-34"], "gender": ["female"]},
            geographic={"country": ["UK"]},
        )
        not_matching = SegmentCriteria(
            demographic={"age_groups": ["25-34"]},
            geographic={"country": ["US"]},
        )
        assert subscriber_matches(subscriber, matching)
        assert not subscriber_matches(subscriber, not_matching)

    def test_missing_attribute_fails_present_criterion(self):
        subscriber = make_subscriber()
        assert not subscriber_matches(subscriber, SegmentCriteria(lifecycle={"stage": ["customer"]}))

    def test_list_attribute_overlaps(self):
        subscriber = make_subscriber(behavioral={"occasions": ["holiday", "birthday"]})
        assert subscriber_matches(subscriber, SegmentCriteria(behavioral={"occasions": ["birthday"]}))
        assert not subscriber_matches(subscriber, SegmentCriteria(behavioral={"occasions": ["wedding"]}))

    def test_interests_match_inferred_or_declared(self):
        inferred = make_subscriber("a@example.com", tracking_data={"interests": ["health"]})
        declared = make_subscriber("b@example.com", psychographic={"interests": ["travel"]})
        criteria = SegmentCriteria(psychographic={"interests": ["health", "travel"]})

        assert filter_subscribers([inferred, declared], criteria) == [inferred, declared]
        assert not subscriber_matches(
            inferred, SegmentCriteria(psychographic={"interests": ["cooking"]})
        )

    def test_purchase_recency_and_order_value(self):
        subscriber = make_subscriber(purchase_history={
            "last_purchase_at": (NOW - timedelta(days=10)).isoformat(),
            "average_order_value": 75,
        })
        assert subscriber_matches(subscriber, SegmentCriteria(purchase_history={"recency": 30}), NOW)
        assert not subscriber_matches(subscriber, SegmentCriteria(purchase_history={"recency": 5}), NOW)
        assert subscriber_matches(
            subscriber, SegmentCriteria(purchase_history={"average_order_value": [50, 100]}), NOW
        )
        assert not subscriber_matches(
            subscriber, SegmentCriteria(purchase_history={"average_order_value": [80, 100]}), NOW
        )

    def test_email_engagement_rates(self):
        subscriber = make_subscriber(email_engagement={"open_rate": 40, "click_rate": 5})
        assert subscriber_matches(subscriber, SegmentCriteria(email_engagement={"open_rate": 30}), NOW)
        assert not subscriber_matches(subscriber, SegmentCriteria(email_engagement={"click_rate": 10}), NOW)

    def test_last_opened_and_subscription_duration(self):
        subscriber = make_subscriber(
            last_active=NOW - timedelta(days=3),
            created_at=NOW - timedelta(days=100),
        )
        assert subscriber_matches(subscriber, SegmentCriteria(email_engagement={"last_opened": 7}), NOW)
        assert not subscriber_matches(subscriber, SegmentCriteria(email_engagement={"last_opened": 1}), NOW)
        assert subscriber_matches(
            subscriber, SegmentCriteria(email_engagement={"subscription_duration": 90}), NOW
        )
        assert not subscriber_matches(
            subscriber, SegmentCriteria(email_engagement={"subscription_duration": 365}), NOW
        )

    def test_engagement_level_uses_lowest_threshold(self):
        assert get_min_engagement_score(["high", "medium"]) == 20
        assert get_min_engagement_score(["high"]) == 50

        subscriber = make_subscriber(tracking_data={"engagement_score": 25})
        assert subscriber_matches(
            subscriber, SegmentCriteria(email_engagement={"engagement_level": ["high", "medium"]})
        )
        assert not subscriber_matches(
            subscriber, SegmentCriteria(email_engagement={"engagement_level": ["high"]})
        )

    def test_segment_size(self):
        subscribers = [
            make_subscriber("a@example.com", demographic={"gender": "male"}),
            make_subscriber("b@example.com", demographic={"gender": "female"}),
            make_subscriber("c@example.com", demographic={"gender": "female"}),
        ]
        criteria = SegmentCriteria(demographic={"gender": ["female"]})
        assert calculate_segment_size(subscribers, criteria) == 2


# =============================================================================
# Database-backed helpers
# =============================================================================

class TestSegmentedSubscribers:

    def test_only_subscribed_are_returned(self, db_session):
        db_session.add_all([
            Subscriber(email="in@example.com", subscribed=True),
            Subscriber(email="out@example.com", subscribed=False),
        ])
        db_session.commit()

        result = get_segmented_subscribers(db_session, SegmentCriteria())
        assert [s.email for s in result] == ["in@example.com"]

    def test_criteria_applied_to_stored_attributes(self, db_session):
        db_session.add_all([
            Subscriber(email="young@example.com", demographic={"age_group": "25-34"}),
            Subscriber(email="older@example.com", demographic={"age_group": "55-64"}),
        ])
        db_session.commit()

        criteria = SegmentCriteria(demographic={"age_groups": ["25-34"]})
        result = get_segmented_subscribers(db_session, criteria)
        assert [s.email for s in result] == ["young@example.com"]


class TestTrackSubscriberActivity:

    def test_updates_tracking_data_and_last_active(self, db_session):
        subscriber = Subscriber(email="active@example.com")
        db_session.add(subscriber)
        db_session.commit()

        track_subscriber_activity(db_session, subscriber.id, page_view="/blog/health-tips")
        track_subscriber_activity(db_session, subscriber.id, content_interaction="fitness-1")
        updated = track_subscriber_activity(
            db_session, subscriber.id, email_interaction={"email_id": "1", "action": "click"}
        )

        assert updated.tracking_data["engagement_score"] == 6
        assert "health" in updated.tracking_data["interests"]
        assert updated.last_active is not None

    def test_unknown_subscriber_returns_none(self, db_session):
        assert track_subscriber_activity(db_session, 999, page_view="/x") is None
