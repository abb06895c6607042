from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from cbtprep.database import get_db
from cbtprep.models import User, UserBadge, CbtSession
from cbtprep.models.session import STATUS_COMPLETED
from cbtprep.utils.auth import get_current_user

router = APIRouter(prefix="/stats", tags=["Stats"])


@router.get("/me")
def my_stats(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Personal summary:
    - accumulated score and number of finished exams
    - average / best percentage over completed sessions
    - unlocked badges
    """
    avg_score, best_score, completed = (
        db.query(
            func.avg(CbtSession.score),
            func.max(CbtSession.score),
            func.count(CbtSession.id),
        )
        .filter(CbtSession.user_id == user.id, CbtSession.status == STATUS_COMPLETED)
        .one()
    )

    badges = (
        db.query(UserBadge)
        .filter(UserBadge.user_id == user.id)
        .order_by(UserBadge.unlocked_at)
        .all()
    )

    return {
        "user_id": user.id,
        "nickname": user.nickname,
        "is_premium": bool(user.is_premium),
        "total_score": int(user.total_score or 0),
        "tests_completed": int(user.tests_completed or 0),
        "completed_sessions": int(completed or 0),
        "average_score": round(float(avg_score), 2) if avg_score is not None else 0.0,
        "best_score": int(best_score or 0),
        "badges": [
            {"title": b.title, "description": b.description, "icon": b.icon, "rarity": b.rarity}
            for b in badges
        ],
    }


@router.get("/leaderboard")
def leaderboard(
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Top users by accumulated score; ties go to whoever finished more exams."""
    rows = (
        db.query(User)
        .filter(User.tests_completed > 0)
        .order_by(User.total_score.desc(), User.tests_completed.desc(), User.created_at)
        .limit(limit)
        .all()
    )
    return [
        {
            "rank": i,
            "nickname": u.nickname,
            "total_score": int(u.total_score or 0),
            "tests_completed": int(u.tests_completed or 0),
            "is_me": u.id == user.id,
        }
        for i, u in enumerate(rows, start=1)
    ]
