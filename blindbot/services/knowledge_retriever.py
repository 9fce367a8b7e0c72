"""
Tenant knowledge retrieval

Embeds the customer's latest message and ranks the tenant's embedded
knowledge documents by cosine similarity. Retrieval is best effort: every
failure degrades to an empty result.
"""
import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
from prometheus_client import Counter
from sqlalchemy.orm import Session

from blindbot.core.config import get_settings
from blindbot.db.models import KnowledgeDocument

logger = logging.getLogger(__name__)

KNOWLEDGE_LOOKUPS = Counter(
    'knowledge_lookups_total',
    'Knowledge retrieval attempts',
    ['status']
)


def cosine_scores(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of one query vector against each row of matrix"""
    q = np.asarray(query, dtype=np.float32)
    q_norm = np.linalg.norm(q)
    row_norms = np.linalg.norm(matrix, axis=1)
    denom = row_norms * q_norm
    denom[denom == 0] = np.inf
    return (matrix @ q) / denom


class KnowledgeRetriever:
    """Similarity search over one tenant's KnowledgeDocument rows"""

    def __init__(
        self,
        db: Session,
        embedder,
        threshold: Optional[float] = None,
        top_k: Optional[int] = None
    ):
        settings = get_settings()
        self.db = db
        self.embedder = embedder
        self.threshold = threshold if threshold is not None else settings.knowledge_similarity_threshold
        self.top_k = top_k if top_k is not None else settings.knowledge_top_k

    def _load_documents(self, tenant_id: str) -> List[Tuple[str, List[float]]]:
        rows = (
            self.db.query(KnowledgeDocument.content, KnowledgeDocument.embedding)
            .filter(KnowledgeDocument.tenant_id == tenant_id, KnowledgeDocument.embedding.isnot(None))
            .all()
        )
        return [(content, embedding) for content, embedding in rows if embedding]

    def rank(self, query_embedding: Sequence[float], documents: List[Tuple[str, List[float]]]) -> List[str]:
        """Snippets scoring at or above the threshold, best first, at most top_k"""
        if not documents or self.top_k <= 0:
            return []

        dimension = len(query_embedding)
        usable = [(content, emb) for content, emb in documents if len(emb) == dimension]
        if not usable:
            return []

        matrix = np.asarray([emb for _, emb in usable], dtype=np.float32)
        scores = cosine_scores(query_embedding, matrix)
        order = np.argsort(-scores, kind="stable")

        results = []
        for idx in order:
            if scores[idx] < self.threshold:
                break
            results.append(usable[idx][0])
            if len(results) >= self.top_k:
                break
        return results

    async def retrieve(self, query: str, tenant_id: str) -> List[str]:
        """
        Grounding snippets for the customer's latest message.

        Never raises: embedding or database failures are logged and yield [].
        """
        if not query or not query.strip():
            return []

        try:
            documents = self._load_documents(tenant_id)
            if not documents:
                KNOWLEDGE_LOOKUPS.labels(status='empty_store').inc()
                return []

            query_embedding = await self.embedder.embed(query.strip())
            snippets = self.rank(query_embedding, documents)
        except Exception as e:
            KNOWLEDGE_LOOKUPS.labels(status='failed').inc()
            logger.warning(f"Knowledge retrieval failed for tenant {tenant_id}: {e}")
            self.db.rollback()
            return []

        KNOWLEDGE_LOOKUPS.labels(status='hit' if snippets else 'miss').inc()
        return snippets
