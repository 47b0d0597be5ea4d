"""Pipeline constants.

Re-exports all constants for convenient importing:
    from tutorgen.constants import CHAPTER_FILENAME_FORMAT, EXTENSION_LANGUAGES
"""

from tutorgen.constants.files import *  # noqa: F403
from tutorgen.constants.generation import *  # noqa: F403
