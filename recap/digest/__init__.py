"""Digest production: concatenation, LLM summarization, persistence."""

from recap.digest.producer import DigestProducer, ProducedDigest
from recap.digest.summarizer import LLMSummarizer

__all__ = ["DigestProducer", "LLMSummarizer", "ProducedDigest"]
