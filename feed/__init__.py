from feed.score_feed import ScoreFeed, ScoredFeed

__all__ = ["ScoreFeed", "ScoredFeed"]
