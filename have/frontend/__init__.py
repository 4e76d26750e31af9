"""Frontend package - converts Have source text to top-level statements."""

from .parse import ParseError as ParseError, Parser as Parser, parse as parse
from .tokens import TokenizeError as TokenizeError, tokenize as tokenize
