from osm_pipeline.normalize.rules import CLASSIFICATION_RULES, ClassificationRule, classify
from osm_pipeline.normalize.tags import Skip, TagNormalizer

__all__ = ["CLASSIFICATION_RULES", "ClassificationRule", "Skip", "TagNormalizer", "classify"]
