"""
Unit tests for query key builders and matching.
"""

import pytest

from feed_access.app.domain.query_keys import (
    OperationTag,
    key_matches,
    keys_referencing,
    make_key,
    operation_name,
    post_by_id_key,
    posts_key,
    recent_posts_key,
    saved_posts_key,
    user_by_id_key,
    user_search_key,
)


class TestQueryKeys:
    """Test cases for key construction."""

    def test_keys_compare_structurally(self):
        assert post_by_id_key("p1") == post_by_id_key("p1")
        assert post_by_id_key("p1") != post_by_id_key("p2")
        assert hash(post_by_id_key("p1")) == hash((OperationTag.POST_BY_ID, "p1"))

    def test_distinct_operations_never_share_a_slot(self):
        assert post_by_id_key("42") != user_by_id_key("42")
        assert recent_posts_key() != posts_key()
        assert saved_posts_key("user-1") != saved_posts_key("user-2")

    def test_user_search_key_carries_user_and_term(self):
        assert user_search_key("user-1", "ann") == (OperationTag.USER_SEARCH, "user-1", "ann")

    @pytest.mark.parametrize("bad", [None, ["p1"], {"id": "p1"}, 1.5, True])
    def test_non_scalar_params_rejected(self, bad):
        with pytest.raises(ValueError):
            make_key(OperationTag.POST_BY_ID, bad)

    def test_operation_name(self):
        assert operation_name(post_by_id_key("p1")) == "post_by_id"


class TestKeyMatching:
    """Test cases for prefix matching."""

    def test_tag_prefix_matches_every_key_of_tag(self):
        prefix = (OperationTag.POST_BY_ID,)
        assert key_matches(post_by_id_key("p1"), prefix)
        assert key_matches(post_by_id_key("p2"), prefix)
        assert not key_matches(user_by_id_key("p1"), prefix)

    def test_full_key_matches_only_itself(self):
        assert key_matches(post_by_id_key("p1"), post_by_id_key("p1"))
        assert not key_matches(post_by_id_key("p2"), post_by_id_key("p1"))

    def test_partial_params(self):
        prefix = (OperationTag.USER_SEARCH, "user-1")
        assert key_matches(user_search_key("user-1", "ann"), prefix)
        assert not key_matches(user_search_key("user-2", "ann"), prefix)

    def test_longer_prefix_never_matches(self):
        assert not key_matches(recent_posts_key(), (OperationTag.RECENT_POSTS, "extra"))

    def test_keys_referencing_entity_across_tags(self):
        keys = [post_by_id_key("p1"), user_by_id_key("p1"), post_by_id_key("p2"), recent_posts_key()]
        assert keys_referencing(keys, "p1") == [post_by_id_key("p1"), user_by_id_key("p1")]
