"""Text-to-speech batching: chunk the script, synthesize, assemble a WAV.

RULES:
- Chunks are synthesized strictly in order, one request at a time
- A failed chunk is skipped; only an all-empty result is an error
"""

from subtitle_studio.speech.batch import DubResource, SpeechBatchPipeline, SpeechSynthesizer

__all__ = ["DubResource", "SpeechBatchPipeline", "SpeechSynthesizer"]
