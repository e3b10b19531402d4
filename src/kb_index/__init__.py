"""
kb-index - semantic search over a local knowledge base.

Splits Markdown and source files into fixed-size line chunks, embeds them
with the OpenAI embeddings API and stores the vectors in a Chroma
collection for natural-language retrieval.
"""

__version__ = "0.4.0"
