import random
import string

CODE_CHARS = string.ascii_uppercase + string.digits


def generate_discount_code(length=8):
    """Random code of uppercase letters and digits, e.g. ``K7Q2ZP0M``."""
    return ''.join(random.choice(CODE_CHARS) for _ in range(length))
