"""Built-in marketing content served when the store has nothing to show."""
from pydantic.alias_generators import to_camel

DEFAULT_SERVICES = [
    {
        'slug': 'travel',
        'title': 'Luxury Travel & Mobility',
        'description': 'Experience the world in absolute comfort with our curated travel solutions',
        'items': [
            'First/Business Class bookings',
            'Luxury hotels & resorts',
            'Chauffeur-driven cars',
            'Airport VIP services',
            'Private jet arrangements',
            'Yacht charters',
        ],
    },
    {
        'slug': 'concierge',
        'title': 'Concierge & Lifestyle',
        'description': 'Your dedicated team ready to fulfill your every desire',
        'items': [
            '24/7 personal concierge',
            'Fine dining reservations',
            'Shopping assistance',
            'Private chef services',
            'Wellness & spa arrangements',
            'Event planning',
        ],
    },
    {
        'slug': 'residences',
        'title': 'Premium Residences',
        'description': 'Your perfect home away from home with full-service luxury',
        'items': [
            'Luxury serviced apartments',
            'Full housekeeping services',
            'Private chef on request',
            'Butler & household staff',
            'Premium security systems',
            'Concierge within residence',
        ],
    },
    {
        'slug': 'relocation',
        'title': 'Relocation & Immigration',
        'description': 'Seamless transition to your new home in India',
        'items': [
            'Visa & FRRO assistance',
            'Cultural orientation programs',
            'School admissions support',
            'Settling-in arrangements',
            'Property search & selection',
            'Move management',
        ],
    },
    {
        'slug': 'immigration',
        'title': 'Immigration Advisory',
        'description': 'Expert guidance through every immigration step',
        'items': [
            'Visa consultation & application',
            'FRRO registration support',
            'Legal documentation',
            'Compliance assistance',
            'Work permit support',
            'Family visa processing',
        ],
    },
    {
        'slug': 'experiences',
        'title': 'Curated Experiences',
        'description': 'Unforgettable moments tailored to your interests',
        'items': [
            'Private cultural tours',
            'Invite-only experiences',
            'Corporate team building',
            'CSR event planning',
            'Heritage walks',
            'Wellness retreats',
        ],
    },
]

DEFAULT_DESTINATIONS = [
    {
        'slug': 'delhi-ncr',
        'name': 'Delhi NCR',
        'headline': 'Business Hub of India',
        'description': "Modern luxury meets ancient heritage in India's capital region",
        'services': ['Business facilities', 'Urban luxury hotels', 'Cultural experiences', 'Fine dining', 'Shopping'],
        'highlights': [
            'Iconic monuments and museums',
            'World-class business infrastructure',
            'Michelin-starred restaurants',
            'Luxury shopping malls',
        ],
    },
    {
        'slug': 'mumbai',
        'name': 'Mumbai',
        'headline': 'Cosmopolitan Coastal Paradise',
        'description': 'Bollywood glamour meets corporate sophistication',
        'services': ['Coastal villas', 'Fine dining', 'Entertainment', 'Shopping', 'Business'],
        'highlights': [
            'Gateway of India views',
            'Luxury beachfront properties',
            'Five-star dining experiences',
            'Entertainment & nightlife',
        ],
    },
    {
        'slug': 'goa',
        'name': 'Goa',
        'headline': 'Tropical Leisure Escape',
        'description': "Sun, sand, and serenity in India's premier beach destination",
        'services': ['Luxury villas', 'Wellness retreats', 'Water sports', 'Fine dining', 'Events'],
        'highlights': ['Private beach access', 'Wellness and yoga programs', 'Yacht charters', 'Sunset dining experiences'],
    },
    {
        'slug': 'jaipur',
        'name': 'Jaipur',
        'headline': 'The Pink City Experience',
        'description': 'Royal heritage and cultural immersion in Rajasthan',
        'services': ['Heritage tours', 'Royal experiences', 'Cultural immersion', 'Fine dining', 'Events'],
        'highlights': [
            'City Palace tours',
            'Amber Fort experiences',
            'Traditional Rajasthani cuisine',
            'Cultural performances',
        ],
    },
    {
        'slug': 'varanasi',
        'name': 'Varanasi',
        'headline': 'Spiritual Awakening',
        'description': "The world's oldest living city and holiest Hindu pilgrimage site",
        'services': ['Spiritual concierge', 'Private ghat access', 'Cultural tours', 'Meditation', 'Wellness'],
        'highlights': ['Private ghat experiences', 'Spiritual guidance', 'Traditional ceremonies', 'Cultural education'],
    },
    {
        'slug': 'rishikesh',
        'name': 'Rishikesh',
        'headline': 'Yoga & Wellness Capital',
        'description': 'Gateway to the Himalayas and center of spiritual wellness',
        'services': ['Yoga retreats', 'Wellness programs', 'Adventure activities', 'Meditation', 'Ayurveda'],
        'highlights': ['World-class yoga programs', 'Ayurvedic treatments', 'Adventure activities', 'Meditation & wellness'],
    },
    {
        'slug': 'south-india',
        'name': 'South India',
        'headline': 'Tropical Splendor',
        'description': 'Backwaters, beaches, and ancient temples across Kerala, Tamil Nadu, and beyond',
        'services': ['Backwater cruises', 'Temple tours', 'Beach resorts', 'Spice route', 'Ayurveda'],
        'highlights': ['Backwater houseboats', 'Ancient temple tours', 'Spice plantation visits', 'Traditional cuisine'],
    },
]

DEFAULT_BANNERS = [
    {
        'slug': 'founders-message',
        'message': 'Now accepting bespoke concierge memberships for 2026. Limited availability.',
        'cta_label': 'Request Membership',
        'cta_url': '/contact',
        'variant': 'primary',
        'active': True,
    },
]

DEFAULT_SECTIONS = [
    {
        'slug': 'membership',
        'title': 'Membership Experiences',
        'body': (
            'Access private tastings, curated wellness retreats, and invite-only cultural '
            'immersions through our membership program.'
        ),
        'cta_label': 'Explore Membership',
        'cta_url': '/contact',
        'position': 0,
        'active': True,
    },
]


def _to_wire(prefix, index, item):
    wire = {'id': f'{prefix}-{item["slug"]}', 'position': item.get('position', index)}
    for key, value in item.items():
        wire[to_camel(key)] = value
    return wire


def default_collection(key):
    """Defaults for a public collection in wire (camelCase) form."""
    source = {
        'services': ('service', DEFAULT_SERVICES),
        'destinations': ('dest', DEFAULT_DESTINATIONS),
        'banners': ('banner', DEFAULT_BANNERS),
        'sections': ('section', DEFAULT_SECTIONS),
    }.get(key)
    if source is None:
        return []
    prefix, items = source
    return [_to_wire(prefix, index, item) for index, item in enumerate(items)]
