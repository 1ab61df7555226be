"""
Voice catalog and tier-based voice permissions
"""
from .errors import AuthorizationError, ValidationError

# Tier required to use a voice: free (everyone, guests included),
# registered (any signed-in user), pro, premium
VOICES = [
    # OpenAI voices
    {"id": "alloy", "name": "Alloy", "provider": "openai", "language": "en", "gender": "neutral", "tier": "free"},
    {"id": "echo", "name": "Echo", "provider": "openai", "language": "en", "gender": "male", "tier": "pro"},
    {"id": "fable", "name": "Fable", "provider": "openai", "language": "en", "gender": "neutral", "tier": "pro"},
    {"id": "onyx", "name": "Onyx", "provider": "openai", "language": "en", "gender": "male", "tier": "premium"},
    {"id": "nova", "name": "Nova", "provider": "openai", "language": "en", "gender": "female", "tier": "premium"},
    {"id": "shimmer", "name": "Shimmer", "provider": "openai", "language": "en", "gender": "female", "tier": "premium"},
    # FPT.AI Vietnamese voices
    {"id": "banmai", "name": "Ban Mai", "provider": "fpt", "language": "vi", "gender": "female",
     "region": "north", "description": "Northern female voice, natural", "tier": "registered"},
    {"id": "leminh", "name": "Le Minh", "provider": "fpt", "language": "vi", "gender": "male",
     "region": "north", "description": "Northern male voice, strong", "tier": "premium"},
    {"id": "thuminh", "name": "Thu Minh", "provider": "fpt", "language": "vi", "gender": "female",
     "region": "south", "description": "Southern female voice, gentle", "tier": "premium"},
    {"id": "giahuy", "name": "Gia Huy", "provider": "fpt", "language": "vi", "gender": "male",
     "region": "south", "description": "Southern male voice, warm", "tier": "premium"},
    {"id": "ngoclam", "name": "Ngoc Lam", "provider": "fpt", "language": "vi", "gender": "female",
     "region": "central", "description": "Central female voice, clear", "tier": "pro"},
]

VOICES_BY_ID = {voice['id']: voice for voice in VOICES}

# Subscription types that unlock each paid tier
TIER_ACCESS = {
    'pro': ('pro', 'premium'),
    'premium': ('premium',),
}

TIER_BADGES = {
    'premium': 'PREMIUM',
    'pro': 'PRO',
    'registered': 'SIGN UP',
}


def get_voice(voice_id):
    voice = VOICES_BY_ID.get(voice_id)
    if voice is None:
        raise ValidationError(f"Unknown voice '{voice_id}'")
    return voice


def provider_for(voice_id):
    return get_voice(voice_id)['provider']


def can_use_voice(voice_id, user=None):
    """Return (allowed, error message). ``user`` None means a guest."""
    tier = VOICES_BY_ID.get(voice_id, {}).get('tier')
    if tier is None:
        return False, f"Unknown voice '{voice_id}'"
    if user is not None and user.role == 'admin':
        return True, None
    if tier == 'free':
        return True, None
    if user is None:
        return False, 'Please sign in to use this voice'
    if tier == 'registered':
        return True, None
    if (user.subscription_type or 'free') in TIER_ACCESS.get(tier, ()):
        return True, None
    return False, f"This voice requires the {tier.upper()} plan. Please upgrade your account."


def check_voice_permission(voice_id, user=None):
    """Raise unless ``user`` may synthesize with ``voice_id``."""
    if voice_id not in VOICES_BY_ID:
        raise ValidationError(f"Unknown voice '{voice_id}'")
    allowed, error = can_use_voice(voice_id, user)
    if not allowed:
        raise AuthorizationError(error)


def voices_for(user=None):
    """Full catalog with voices the caller cannot use marked disabled."""
    listed = []
    for voice in VOICES:
        allowed, _ = can_use_voice(voice['id'], user)
        if allowed:
            listed.append(dict(voice))
        else:
            badge = TIER_BADGES.get(voice['tier'], voice['tier'].upper())
            listed.append(dict(voice, name=f"{voice['name']} ({badge})", disabled=True))
    return listed
