"""
Popular Roadmap Seeding
=======================

Loads the catalogue of popular pre-generated roadmaps so common requests are
answered from cache (exact or similar match) without calling the oracle.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

from ..models import Roadmap
from ..utils.logging_config import get_logger
from ..utils.slug_utils import slugify
from ..utils.time import utc_now
from .keywords import extract_keywords, merge_keywords
from .store import RoadmapStore

logger = get_logger('seeding')

POPULAR_ROADMAPS: List[Dict[str, Any]] = [
    {
        'title': "Frontend Development",
        'description': "Complete roadmap to become a frontend developer",
        'category': "frontend",
        'difficulty': "beginner",
        'tags': ["html", "css", "javascript", "react", "vue", "angular"],
    },
    {
        'title': "Backend Development",
        'description': "Master backend development with Node.js, Python, and more",
        'category': "backend",
        'difficulty': "intermediate",
        'tags': ["nodejs", "python", "java", "api", "database"],
    },
    {
        'title': "Full Stack JavaScript",
        'description': "Learn full stack development with JavaScript",
        'category': "frontend",
        'difficulty': "intermediate",
        'tags': ["javascript", "nodejs", "react", "mongodb", "express"],
    },
    {
        'title': "DevOps Engineer",
        'description': "Complete DevOps learning path",
        'category': "devops",
        'difficulty': "advanced",
        'tags': ["docker", "kubernetes", "ci/cd", "aws", "terraform"],
    },
    {
        'title': "Python Programming",
        'description': "Learn Python from basics to advanced",
        'category': "backend",
        'difficulty': "beginner",
        'tags': ["python", "django", "flask", "data-science"],
    },
    {
        'title': "React Developer",
        'description': "Master React.js and its ecosystem",
        'category': "frontend",
        'difficulty': "intermediate",
        'tags': ["react", "redux", "hooks", "nextjs"],
    },
    {
        'title': "Data Science",
        'description': "Complete data science learning path",
        'category': "data-science",
        'difficulty': "intermediate",
        'tags': ["python", "machine-learning", "pandas", "numpy", "tensorflow"],
    },
    {
        'title': "Mobile App Development",
        'description': "Learn to build mobile apps with React Native or Flutter",
        'category': "mobile",
        'difficulty': "intermediate",
        'tags': ["react-native", "flutter", "ios", "android"],
    },
    {
        'title': "Cloud Computing",
        'description': "Master cloud platforms and services",
        'category': "cloud",
        'difficulty': "advanced",
        'tags': ["aws", "azure", "gcp", "serverless"],
    },
    {
        'title': "Cybersecurity Fundamentals",
        'description': "Learn cybersecurity basics and best practices",
        'category': "cybersecurity",
        'difficulty': "intermediate",
        'tags': ["security", "ethical-hacking", "penetration-testing"],
    },
]


def build_seed_roadmap(data: Dict[str, Any]) -> Roadmap:
    """Unsaved pre-generated roadmap for one catalogue entry."""
    roadmap = Roadmap(
        title=data['title'],
        slug=slugify(data['title']),
        description=data.get('description', ''),
        category=data['category'],
        difficulty=data['difficulty'],
        is_published=True,
        published_at=utc_now(),
        is_pre_generated=True,
        average_rating=4.5,
        quality_score=100.0,
        needs_regeneration=False,
        version=1,
        last_updated=utc_now(),
    )
    tags = data.get('tags', [])
    roadmap.set_tags(tags)
    roadmap.set_search_keywords(merge_keywords(extract_keywords(data['title']), tags))
    roadmap.set_votes([], [])
    return roadmap


def seed_popular_roadmaps(store: RoadmapStore, catalogue: List[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Create missing catalogue roadmaps; existing pre-generated titles are skipped."""
    results = {
        'created': 0,
        'skipped': 0,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }
    logger.info("Starting to seed popular roadmaps...")
    with store.transaction():
        for data in catalogue or POPULAR_ROADMAPS:
            existing = store.first(Roadmap, title=data['title'], is_pre_generated=True)
            if existing is not None:
                logger.debug(f"Roadmap '{data['title']}' already exists, skipping...")
                results['skipped'] += 1
                continue
            store.create(build_seed_roadmap(data))
            results['created'] += 1
            logger.info(f"Created pre-generated roadmap: {data['title']}")
    logger.info(f"Finished seeding popular roadmaps ({results['created']} created, {results['skipped']} skipped)")
    return results


def clear_pregenerated_roadmaps(store: RoadmapStore) -> int:
    """Delete every pre-generated roadmap together with its nodes and exclusive resources."""
    with store.transaction():
        roadmaps = store.find(Roadmap, is_pre_generated=True)
        for roadmap in roadmaps:
            store.delete_tree(roadmap)
            store.delete(roadmap)
    logger.info(f"Cleared {len(roadmaps)} pre-generated roadmaps")
    return len(roadmaps)
