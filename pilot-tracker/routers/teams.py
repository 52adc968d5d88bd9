from datetime import date
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field

from metrics import funnel_conversions, get_team_tam
from schemas import AcceleratorRule, Mission, TeamMember
from store import TeamStore, get_store
from utils import generate_test_phases, phase_to_date, recent_week_keys, time_ago

router = APIRouter()

# --- Pydantic Models ---
class TeamCreate(BaseModel):
    name: str = Field(min_length=1)
    owner: str = ""

class TeamUpdate(BaseModel):
    name: Optional[str] = None
    owner: Optional[str] = None
    lead_rep: Optional[str] = None
    sort_order: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_tam: Optional[int] = Field(None, ge=0)
    tam_submitted: Optional[bool] = None

class TeamGoalsUpdate(BaseModel):
    goals_parity: Optional[bool] = None
    team_goals: Optional[Dict[str, int]] = None
    enabled_goals: Optional[Dict[str, bool]] = None
    accelerator_config: Optional[Dict[str, List[AcceleratorRule]]] = None
    team_goals_by_level: Optional[Dict[str, Dict[str, float]]] = None
    goal_scope_config: Optional[Dict[str, str]] = None

class MemberCreate(BaseModel):
    name: str = Field(min_length=1)
    goals: Dict[str, int] = Field(default_factory=dict)
    level: Optional[str] = None
    team_id: Optional[str] = None

class MemberGoalsUpdate(BaseModel):
    goals: Optional[Dict[str, int]] = None
    level: Optional[str] = None

class AssignRequest(BaseModel):
    team_id: str

class FunnelUpdate(BaseModel):
    tam: Optional[int] = Field(None, ge=0)
    calls: Optional[int] = Field(None, ge=0)
    connects: Optional[int] = Field(None, ge=0)
    ops: Optional[int] = Field(None, ge=0)
    demos: Optional[int] = Field(None, ge=0)
    wins: Optional[int] = Field(None, ge=0)
    feedback: Optional[int] = Field(None, ge=0)
    activity: Optional[int] = Field(None, ge=0)
    role: Optional[str] = None
    submitted: Optional[bool] = None

class WinCreate(BaseModel):
    restaurant: str = Field(min_length=1)
    story: Optional[str] = None
    won_on: Optional[date] = None

class MemberSummary(BaseModel):
    id: str
    name: str
    team_id: Optional[str]
    level: Optional[str]
    goals: Dict[str, int]
    ducks_earned: int
    win_count: int
    is_active: bool

class TeamSummary(BaseModel):
    id: str
    name: str
    owner: str
    lead_rep: str
    sort_order: int
    is_active: bool
    start_date: Optional[date]
    end_date: Optional[date]
    team_tam: int
    members: List[MemberSummary]

class PhaseLabelUpdate(BaseModel):
    label: str

class RoleCreate(BaseModel):
    name: str = Field(min_length=1)

class MissionUpdate(BaseModel):
    content: Optional[str] = None
    submitted: Optional[bool] = None

class Phase(BaseModel):
    month_index: int
    month_label: str
    progress: int
    label: str
    reference_date: date


def _member_summary(member: TeamMember) -> MemberSummary:
    return MemberSummary(
        id=member.id,
        name=member.name,
        team_id=member.team_id,
        level=member.level,
        goals=member.goals,
        ducks_earned=member.ducks_earned,
        win_count=len(member.wins),
        is_active=member.is_active,
    )

def _team_summary(store: TeamStore, team_id: str) -> TeamSummary:
    team = store.snapshot.team_view(team_id)
    return TeamSummary(
        id=team.id,
        name=team.name,
        owner=team.owner,
        lead_rep=team.lead_rep,
        sort_order=team.sort_order,
        is_active=team.is_active,
        start_date=team.start_date,
        end_date=team.end_date,
        team_tam=get_team_tam(team),
        members=[_member_summary(m) for m in team.active_members()],
    )


# --- Teams ---
@router.get("/teams", response_model=List[TeamSummary], tags=["Teams"])
def list_teams(include_archived: bool = False, store: TeamStore = Depends(get_store)):
    teams = sorted(store.snapshot.teams.values(), key=lambda t: (t.sort_order, t.name))
    return [_team_summary(store, t.id) for t in teams if t.is_active or include_archived]

@router.post("/teams", response_model=TeamSummary, status_code=201, tags=["Teams"])
def create_team(body: TeamCreate, store: TeamStore = Depends(get_store)):
    team = store.create_team(body.name, body.owner)
    return _team_summary(store, team.id)

@router.patch("/teams/{team_id}", response_model=TeamSummary, tags=["Teams"])
def update_team(team_id: str, body: TeamUpdate, store: TeamStore = Depends(get_store)):
    store.update_team(team_id, body.model_dump(exclude_unset=True))
    return _team_summary(store, team_id)

@router.put("/teams/{team_id}/goals", tags=["Teams"])
def update_team_goals(team_id: str, body: TeamGoalsUpdate, store: TeamStore = Depends(get_store)):
    team = store.update_team_goals(team_id, body.model_dump(exclude_unset=True))
    return team.goal_config()

@router.delete("/teams/{team_id}", response_model=TeamSummary, tags=["Teams"])
def archive_team(team_id: str, store: TeamStore = Depends(get_store)):
    store.archive_team(team_id)
    return _team_summary(store, team_id)

@router.get("/teams/{team_id}/phases", response_model=List[Phase], tags=["Teams"])
def get_team_phases(team_id: str, store: TeamStore = Depends(get_store)):
    team = store.get_team(team_id)
    phases = generate_test_phases(team.start_date, team.end_date, store.snapshot.phase_labels_for(team_id))
    return [Phase(reference_date=phase_to_date(p), **{k: p[k] for k in ("month_index", "month_label", "progress", "label")}) for p in phases]

@router.put("/teams/{team_id}/phases/{month_index}", response_model=List[Phase], tags=["Teams"])
def update_phase_label(team_id: str, body: PhaseLabelUpdate, month_index: int = Path(ge=0), store: TeamStore = Depends(get_store)):
    store.set_phase_label(team_id, month_index, body.label)
    return get_team_phases(team_id, store)


# --- Members ---
@router.get("/members/unassigned", response_model=List[MemberSummary], tags=["Members"])
def list_unassigned_members(store: TeamStore = Depends(get_store)):
    return [_member_summary(m) for m in store.snapshot.unassigned_members()]

@router.post("/members", response_model=MemberSummary, status_code=201, tags=["Members"])
def create_member(body: MemberCreate, store: TeamStore = Depends(get_store)):
    if body.team_id is not None:
        store.get_team(body.team_id)
    member = store.create_member(body.name, goals=body.goals, level=body.level, team_id=body.team_id)
    return _member_summary(member)

@router.get("/members/{member_id}", tags=["Members"])
def get_member_detail(member_id: str, weeks: int = 8, store: TeamStore = Depends(get_store)):
    member = store.snapshot.merged_members().get(member_id) or store.get_member(member_id)
    funnels = []
    for week_key in recent_week_keys(weeks):
        funnel = member.funnel_by_week.get(week_key)
        if funnel is None:
            continue
        funnels.append({
            "week_key": week_key,
            **funnel.model_dump(mode="json"),
            "conversions": funnel_conversions(funnel),
            "submitted_ago": time_ago(funnel.submitted_at) if funnel.submitted_at else None,
        })
    return {
        **_member_summary(member).model_dump(),
        "wins": [w.model_dump(mode="json") for w in member.wins],
        "funnels": funnels,
    }

@router.put("/members/{member_id}/goals", response_model=MemberSummary, tags=["Members"])
def update_member_goals(member_id: str, body: MemberGoalsUpdate, store: TeamStore = Depends(get_store)):
    return _member_summary(store.update_member_goals(member_id, body.model_dump(exclude_unset=True)))

@router.post("/members/{member_id}/assign", response_model=MemberSummary, tags=["Members"])
def assign_member(member_id: str, body: AssignRequest, store: TeamStore = Depends(get_store)):
    return _member_summary(store.assign_member(member_id, body.team_id))

@router.post("/members/{member_id}/unassign", response_model=MemberSummary, tags=["Members"])
def unassign_member(member_id: str, store: TeamStore = Depends(get_store)):
    return _member_summary(store.unassign_member(member_id))

@router.delete("/members/{member_id}", response_model=MemberSummary, tags=["Members"])
def remove_member(member_id: str, store: TeamStore = Depends(get_store)):
    return _member_summary(store.remove_member(member_id))

@router.put("/members/{member_id}/funnels/{week_key}", tags=["Members"])
def save_weekly_funnel(member_id: str, week_key: date, body: FunnelUpdate, store: TeamStore = Depends(get_store)):
    funnel = store.upsert_funnel(member_id, week_key.isoformat(), body.model_dump(exclude_unset=True))
    return {**funnel.model_dump(mode="json"), "conversions": funnel_conversions(funnel)}

@router.post("/members/{member_id}/wins", status_code=201, tags=["Members"])
def add_win(member_id: str, body: WinCreate, store: TeamStore = Depends(get_store)):
    member, earned_duck = store.add_win(member_id, body.restaurant, body.story, body.won_on)
    return {"member": _member_summary(member), "earned_duck": earned_duck}


# --- Pilot inputs ---
@router.get("/roles", response_model=List[str], tags=["Pilot"])
def list_roles(store: TeamStore = Depends(get_store)):
    return store.snapshot.role_catalogue()

@router.post("/roles", response_model=List[str], status_code=201, tags=["Pilot"])
def add_role(body: RoleCreate, store: TeamStore = Depends(get_store)):
    return store.add_custom_role(body.name)

@router.get("/mission", response_model=Mission, tags=["Pilot"])
def get_mission(store: TeamStore = Depends(get_store)):
    return store.snapshot.mission

@router.put("/mission", response_model=Mission, tags=["Pilot"])
def update_mission(body: MissionUpdate, store: TeamStore = Depends(get_store)):
    return store.update_mission(body.model_dump(exclude_unset=True))


# --- Notifications ---
@router.get("/notifications", tags=["Notifications"])
def get_notifications(store: TeamStore = Depends(get_store)):
    return store.drain_notifications()
