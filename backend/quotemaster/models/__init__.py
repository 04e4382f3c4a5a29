from .auth import User, SessionToken
from .companies import Company
from .quotes import QuoteDraft, QuoteItem
from .documents import DocumentSequence, GenerationReceipt

__all__ = [
    'User', 'SessionToken',
    'Company',
    'QuoteDraft', 'QuoteItem',
    'DocumentSequence', 'GenerationReceipt',
]
