# AI Helper Functions for PeerQ
# Keyword extraction, TF-IDF similarity and rich-text cleanup

import logging
import re

import bleach
import markdown
import nltk
from nltk.corpus import stopwords
from nltk.tokenize import wordpunct_tokenize
from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS, TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

logger = logging.getLogger(__name__)

_stop_words = None


def load_stop_words(download=True):
    """Load the NLTK English stop-word list, fetching the corpus once if allowed.

    Without the corpus (and with downloads disabled) scikit-learn's built-in
    English list is used instead.
    """
    global _stop_words
    try:
        nltk.data.find('corpora/stopwords')
    except LookupError:
        if download:
            nltk.download('stopwords', quiet=True)
    try:
        _stop_words = frozenset(stopwords.words('english'))
    except LookupError:
        logger.warning("NLTK stopwords corpus unavailable, using scikit-learn stop words")
        _stop_words = frozenset(ENGLISH_STOP_WORDS)
    return _stop_words


def get_stop_words():
    if _stop_words is None:
        return load_stop_words(download=False)
    return _stop_words


def preprocess_text(text):
    """Clean and preprocess text for NLP"""
    # Convert to lowercase
    text = text.lower()

    # Remove markup, special characters and numbers
    text = re.sub(r'<[^>]+>', ' ', text)
    text = re.sub(r'[^a-z\s]', ' ', text)

    tokens = wordpunct_tokenize(text)

    stop_words = get_stop_words()
    tokens = [word for word in tokens if word not in stop_words and len(word) > 2]

    return ' '.join(tokens)


def extract_keywords(text, top_n=10):
    """Most frequent non-stop-word terms of ``text``, most frequent first."""
    word_freq = {}
    for word in preprocess_text(text).split():
        word_freq[word] = word_freq.get(word, 0) + 1

    sorted_words = sorted(word_freq.items(), key=lambda x: x[1], reverse=True)
    return [word for word, freq in sorted_words[:top_n]]


def find_similar_questions(question_text, existing_questions, threshold=0.2, top_n=5):
    """
    Find similar questions using TF-IDF and cosine similarity

    Args:
        question_text: Free text to compare against
        existing_questions: List of dicts with 'title' and 'description'
        threshold: Similarity threshold (0-1)
        top_n: Number of similar questions to return

    Returns:
        List of {'question', 'similarity'} dicts, best match first
    """
    if not existing_questions:
        return []

    new_text = preprocess_text(question_text)
    existing_texts = [preprocess_text(f"{q['title']} {q.get('description', '')}") for q in existing_questions]

    if not new_text.strip() or not any(t.strip() for t in existing_texts):
        return []

    vectorizer = TfidfVectorizer(max_features=100)
    try:
        tfidf_matrix = vectorizer.fit_transform([new_text] + existing_texts)
    except ValueError:
        # empty vocabulary after preprocessing
        return []

    similarities = cosine_similarity(tfidf_matrix[0:1], tfidf_matrix[1:]).flatten()

    similar_indices = [(idx, score) for idx, score in enumerate(similarities) if score >= threshold]
    similar_indices.sort(key=lambda x: x[1], reverse=True)

    return [
        {'question': existing_questions[idx], 'similarity': float(score)}
        for idx, score in similar_indices[:top_n]
    ]


RICH_TEXT_TAGS = bleach.sanitizer.ALLOWED_TAGS | {
    'p', 'br', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'pre', 'code', 'u', 's',
    'span', 'div', 'blockquote', 'hr', 'ul', 'ol', 'li', 'img',
    'table', 'thead', 'tbody', 'tr', 'th', 'td',
}
RICH_TEXT_ATTRS = {
    **bleach.sanitizer.ALLOWED_ATTRIBUTES,
    '*': ['class'],
    'img': ['src', 'alt'],
    'code': ['class'],
}


def sanitize_rich_text(html):
    """Strip scripts and unknown markup from editor HTML."""
    if not html:
        return ''
    return bleach.clean(html, tags=RICH_TEXT_TAGS, attributes=RICH_TEXT_ATTRS, strip=True).strip()


def render_markdown(text):
    if not text:
        return ""
    html = markdown.markdown(text, extensions=['fenced_code', 'tables', 'nl2br'])
    return bleach.clean(html, tags=RICH_TEXT_TAGS, attributes=RICH_TEXT_ATTRS)
