from transfer.transformers.normalizer import RecordNormalizer
from transfer.transformers.batcher import batched, abatched

__all__ = ["RecordNormalizer", "batched", "abatched"]
