# models.py
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

class DbTeam(Base):
    __tablename__ = 'teams'

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    owner = Column(String, nullable=False, default="")
    lead_rep = Column(String, nullable=False, default="")
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    total_tam = Column(Integer, nullable=False, default=0)
    tam_submitted = Column(Boolean, nullable=False, default=False)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    # Goal configuration, stored as structured blobs
    goals_parity = Column(Boolean, nullable=False, default=False)
    team_goals = Column(JSON, nullable=False, default=dict)
    enabled_goals = Column(JSON, nullable=False, default=dict)
    accelerator_config = Column(JSON, nullable=False, default=dict)
    team_goals_by_level = Column(JSON, nullable=False, default=dict)
    goal_scope_config = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class DbMember(Base):
    __tablename__ = 'members'

    id = Column(String, primary_key=True)
    team_id = Column(String, ForeignKey('teams.id'), nullable=True, index=True)
    name = Column(String, nullable=False)
    level = Column(String, nullable=True)
    goals = Column(JSON, nullable=False, default=dict)
    ducks_earned = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    touched_accounts = Column(Integer, nullable=False, default=0)
    touched_tam = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class DbWeeklyFunnel(Base):
    __tablename__ = 'weekly_funnels'
    __table_args__ = (UniqueConstraint('member_id', 'week_key', name='uq_funnel_member_week'),)

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(String, ForeignKey('members.id'), nullable=False, index=True)
    week_key = Column(String(10), nullable=False)
    role = Column(String, nullable=True)
    tam = Column(Integer, nullable=False, default=0)
    calls = Column(Integer, nullable=False, default=0)
    connects = Column(Integer, nullable=False, default=0)
    ops = Column(Integer, nullable=False, default=0)
    demos = Column(Integer, nullable=False, default=0)
    wins = Column(Integer, nullable=False, default=0)
    feedback = Column(Integer, nullable=False, default=0)
    activity = Column(Integer, nullable=False, default=0)
    submitted = Column(Boolean, nullable=False, default=False)
    submitted_at = Column(DateTime(timezone=True), nullable=True)

class DbWinEntry(Base):
    __tablename__ = 'win_entries'

    id = Column(String, primary_key=True)
    member_id = Column(String, ForeignKey('members.id'), nullable=False, index=True)
    restaurant = Column(String, nullable=False)
    story = Column(String, nullable=True)
    won_on = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class DbSuperhexActivity(Base):
    """Weekly activity counts from the external reporting feed."""
    __tablename__ = 'superhex_activity'
    __table_args__ = (UniqueConstraint('rep_name', 'activity_week', name='uq_superhex_rep_week'),)

    id = Column(Integer, primary_key=True, index=True)
    rep_name = Column(String, nullable=False)
    activity_week = Column(Date, nullable=False)
    total_activity_count = Column(Integer, nullable=False, default=0)
    calls_count = Column(Integer, nullable=False, default=0)
    connects_count = Column(Integer, nullable=False, default=0)
    ops_count = Column(Integer, nullable=False, default=0)
    total_demos = Column(Integer, nullable=False, default=0)
    total_wins = Column(Integer, nullable=False, default=0)
    feedback_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class DbMemberTeamHistory(Base):
    __tablename__ = 'member_team_history'

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(String, nullable=False, index=True)
    team_id = Column(String, nullable=True, index=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)

class DbTeamGoalsHistory(Base):
    __tablename__ = 'team_goals_history'
    __table_args__ = (UniqueConstraint('team_id', 'month', name='uq_team_goals_month'),)

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(String, nullable=False, index=True)
    month = Column(String(7), nullable=False)
    goals_parity = Column(Boolean, nullable=False, default=False)
    team_goals = Column(JSON, nullable=False, default=dict)
    enabled_goals = Column(JSON, nullable=False, default=dict)
    accelerator_config = Column(JSON, nullable=False, default=dict)
    team_goals_by_level = Column(JSON, nullable=False, default=dict)
    goal_scope_config = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class DbMemberGoalsHistory(Base):
    __tablename__ = 'member_goals_history'
    __table_args__ = (UniqueConstraint('member_id', 'month', name='uq_member_goals_month'),)

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(String, nullable=False, index=True)
    month = Column(String(7), nullable=False)
    level = Column(String, nullable=True)
    goals = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class DbTeamPhaseLabel(Base):
    """Manager-edited label for one month of a team's pilot window."""
    __tablename__ = 'team_phase_labels'
    __table_args__ = (UniqueConstraint('team_id', 'month_index', name='uq_phase_label_team_month'),)

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(String, ForeignKey('teams.id'), nullable=False, index=True)
    month_index = Column(Integer, nullable=False)
    label = Column(String, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class DbCustomRole(Base):
    __tablename__ = 'custom_roles'

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class DbMission(Base):
    """Single-row table holding the pilot's mission statement."""
    __tablename__ = 'mission'

    id = Column(Integer, primary_key=True, index=True)
    content = Column(String, nullable=False, default="")
    submitted = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
