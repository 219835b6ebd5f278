"""
Tournament service: creation, result reporting, status changes and standings.

Creation is the only place the scheduler runs. The roster is seeded by each
player's rating in the tournament mode, split into groups, scheduled, and
the whole structure (tournament, groups, participants, matchups) is written
in a single flush.

Reporting a matchup creates an ordinary confirmed Match in the league
ledger, so tournament games are rated exactly like any other game. The
tournament itself moves scheduled -> active on its first result and
active -> completed once no matchup is left to play. Cancelled matchups
(see update_tournament_structure) do not hold a tournament open.

Usage:
    from pongleague.services.tournaments import TournamentRequest, create_tournament

    with get_session() as session:
        tournament = create_tournament(session, TournamentRequest(
            name="Spring Ladder",
            mode="singles",
            participant_ids=[p.id for p in players],
            group_labels=["Table 1", "Table 2"],
            start_at=datetime(2026, 3, 1, 18),
            end_at=datetime(2026, 3, 31, 22),
        ))
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pongleague.db.models import (
    Match,
    MatchParticipant,
    Player,
    PlayerRating,
    Tournament,
    TournamentGroup,
    TournamentMatch,
    TournamentParticipant,
    utcnow,
)
from pongleague.exceptions import MatchValidationError, PreconditionError
from pongleague.rating.constants import DEFAULT_RATING
from pongleague.rating.engine import RatingEngine
from pongleague.scheduling.placements import MatchupRecord, Placement, calculate_placements_for_group
from pongleague.scheduling.scheduler import (
    DEFAULT_GAMES_PER_GROUP,
    DEFAULT_MATCHES_PER_PLAYER,
    MAX_COMPETITIVE_ITERATIONS,
    SeededParticipant,
    plan_tournament,
)
from pongleague.services.matches import rate_confirmed_match
from pongleague.statuses import (
    ALL_TOURNAMENT_MATCH_STATUSES,
    DOUBLES,
    FORMAT_COMPETITIVE,
    FORMAT_STANDARD,
    MATCH_CANCELLED,
    MATCH_CONFIRMED,
    MATCH_COUNT_MODES,
    MATCH_TYPES,
    PER_PLAYER,
    TEAM_SIZES,
    TERMINAL_TOURNAMENT_STATUSES,
    TOTAL_MATCHES,
    TOURNAMENT_ACTIVE,
    TOURNAMENT_COMPLETED,
    TOURNAMENT_FORMATS,
    TOURNAMENT_MATCH_CANCELLED,
    TOURNAMENT_MATCH_PLAYED,
    TOURNAMENT_MATCH_SCHEDULED,
    TOURNAMENT_SCHEDULED,
    assert_tournament_transition,
)
from pongleague.validation import (
    DEFAULT_TARGET_POINTS,
    DEFAULT_WIN_BY_MARGIN,
    MAX_LOCATION_LENGTH,
    MAX_NOTE_LENGTH,
    validate_score,
)

logger = logging.getLogger(__name__)


@dataclass
class TournamentRequest:
    """Everything needed to create a tournament."""
    name: str
    mode: str
    participant_ids: list[int]
    group_labels: list[str]
    start_at: datetime
    end_at: datetime
    format: str = FORMAT_STANDARD
    match_count_mode: str = PER_PLAYER
    matches_per_player: Optional[int] = None
    games_per_group: Optional[int] = None
    round_robin_iterations: Optional[int] = None


@dataclass
class GroupStandings:
    """A group's placements, ready for display."""
    group_id: int
    name: str
    table_label: str
    placements: list[Placement] = field(default_factory=list)


def get_tournament(session: Session, tournament_id: int) -> Tournament:
    """Load a tournament or raise PreconditionError."""
    tournament = session.get(Tournament, tournament_id)
    if tournament is None:
        raise PreconditionError(f"Tournament {tournament_id} not found")
    return tournament


def _validate_request(request: TournamentRequest, matches_per_player: int, games_per_group: int, iterations: int) -> None:
    if request.mode not in MATCH_TYPES:
        raise PreconditionError(f"Unknown tournament mode: {request.mode!r}")
    if request.format not in TOURNAMENT_FORMATS:
        raise PreconditionError(f"Unknown tournament format: {request.format!r}")
    if request.match_count_mode not in MATCH_COUNT_MODES:
        raise PreconditionError(f"Unknown match count mode: {request.match_count_mode!r}")

    if len(request.participant_ids) < 2:
        raise PreconditionError("Tournament must include at least two participants")
    if len(set(request.participant_ids)) != len(request.participant_ids):
        raise PreconditionError("Participants must be unique")
    if not request.group_labels:
        raise PreconditionError("Provide at least one group label")
    if len(set(request.group_labels)) != len(request.group_labels):
        raise PreconditionError("Group labels must be unique")
    if request.start_at >= request.end_at:
        raise PreconditionError("End time must be after the start time")
    if request.mode == DOUBLES and len(request.participant_ids) < 4:
        raise PreconditionError("Doubles tournaments require at least four participants")
    if request.match_count_mode == PER_PLAYER and matches_per_player < 1:
        raise PreconditionError("Matches per player must be at least 1")
    if request.match_count_mode == TOTAL_MATCHES and games_per_group < 1:
        raise PreconditionError("Games per group must be at least 1")

    if request.format == FORMAT_COMPETITIVE:
        if request.match_count_mode != PER_PLAYER:
            raise PreconditionError("Competitive tournaments always allocate matches per player")
        if iterations > MAX_COMPETITIVE_ITERATIONS:
            raise PreconditionError(
                f"Round robin iterations are limited to {MAX_COMPETITIVE_ITERATIONS} per tournament"
            )


def _seed_participants(session: Session, participant_ids: list[int], mode: str) -> list[SeededParticipant]:
    """Look up each player's rating in the tournament mode, keeping request order."""
    players = {
        p.id: p for p in session.execute(select(Player).where(Player.id.in_(participant_ids))).scalars()
    }
    missing = [pid for pid in participant_ids if pid not in players]
    if missing:
        raise PreconditionError(f"One or more participants could not be found: {missing}")

    ratings = dict(session.execute(
        select(PlayerRating.player_id, PlayerRating.rating)
        .where(PlayerRating.player_id.in_(participant_ids))
        .where(PlayerRating.mode == mode)
    ).all())

    return [
        SeededParticipant(
            player_id=pid,
            rating=ratings.get(pid, DEFAULT_RATING),
            display_name=players[pid].display_name,
        )
        for pid in participant_ids
    ]


def create_tournament(
    session: Session,
    request: TournamentRequest,
    rng: Optional[random.Random] = None,
) -> Tournament:
    """
    Validate, schedule and persist a new tournament.

    Quotas default to 3 matches per player and 8 games per group;
    round-robin iterations are at least 1. Only the quota matching the
    match count mode is stored, and neither is stored for competitive
    tournaments. Every matchup is scheduled at the tournament start.

    Args:
        session: Active SQLAlchemy session. Caller is responsible for commit.
        request: Tournament options and roster
        rng: Random source for doubles pairings

    Returns:
        The flushed Tournament with groups, participants and matches

    Raises:
        PreconditionError: on any invalid option or unknown participant
    """
    matches_per_player = (
        request.matches_per_player if request.matches_per_player is not None else DEFAULT_MATCHES_PER_PLAYER
    )
    games_per_group = request.games_per_group if request.games_per_group is not None else DEFAULT_GAMES_PER_GROUP
    iterations = max(1, request.round_robin_iterations or 1)

    _validate_request(request, matches_per_player, games_per_group, iterations)

    seeded = _seed_participants(session, request.participant_ids, request.mode)
    plans = plan_tournament(
        seeded,
        request.group_labels,
        mode=request.mode,
        format=request.format,
        match_count_mode=request.match_count_mode,
        matches_per_player=matches_per_player,
        games_per_group=games_per_group,
        iterations=iterations,
        rng=rng,
    )

    competitive = request.format == FORMAT_COMPETITIVE
    tournament = Tournament(
        name=request.name,
        mode=request.mode,
        format=request.format,
        status=TOURNAMENT_SCHEDULED,
        match_count_mode=request.match_count_mode,
        matches_per_player=matches_per_player if not competitive and request.match_count_mode == PER_PLAYER else None,
        games_per_group=games_per_group if not competitive and request.match_count_mode == TOTAL_MATCHES else None,
        round_robin_iterations=iterations,
        start_at=request.start_at,
        end_at=request.end_at,
    )

    for plan in plans:
        group = TournamentGroup(name=plan.label, table_label=plan.label)
        tournament.groups.append(group)

        for seed, player_id in enumerate(plan.participant_ids, start=1):
            tournament.participants.append(
                TournamentParticipant(player_id=player_id, group=group, seed=seed)
            )
        for matchup in plan.matchups:
            tournament.matches.append(TournamentMatch(
                group=group,
                team1_ids=list(matchup.team1),
                team2_ids=list(matchup.team2),
                iteration=matchup.iteration,
                status=TOURNAMENT_MATCH_SCHEDULED,
                scheduled_at=request.start_at,
            ))

    session.add(tournament)
    session.flush()

    logger.info(
        "Created %s %s tournament %s '%s': %d players, %d groups, %d matchups",
        request.format, request.mode, tournament.id, tournament.name,
        len(seeded), len(plans), sum(len(p.matchups) for p in plans),
    )
    return tournament


def _remaining_matchups(session: Session, tournament_id: int) -> int:
    """Count matchups still waiting to be played; cancelled ones do not count."""
    return session.execute(
        select(func.count(TournamentMatch.id))
        .where(TournamentMatch.tournament_id == tournament_id)
        .where(TournamentMatch.status == TOURNAMENT_MATCH_SCHEDULED)
    ).scalar()


def report_tournament_match(
    session: Session,
    tournament_match_id: int,
    team1_score: int,
    team2_score: int,
    target_points: int = DEFAULT_TARGET_POINTS,
    win_by_margin: int = DEFAULT_WIN_BY_MARGIN,
    location: Optional[str] = None,
    note: Optional[str] = None,
    engine: Optional[RatingEngine] = None,
) -> Match:
    """
    Record the result of a scheduled matchup.

    Creates a confirmed Match linked to the matchup, rates it, and advances
    the tournament status.

    Returns:
        The created Match

    Raises:
        PreconditionError: if the matchup is unknown, already played or
            cancelled, belongs to a closed tournament, or its stored teams
            are inconsistent with the tournament
        MatchValidationError: if the score is not a legal finished game
    """
    matchup = session.get(TournamentMatch, tournament_match_id)
    if matchup is None:
        raise PreconditionError(f"Tournament match {tournament_match_id} not found")
    if matchup.status == TOURNAMENT_MATCH_PLAYED:
        raise PreconditionError("This matchup has already been reported")
    if matchup.status == TOURNAMENT_MATCH_CANCELLED:
        raise PreconditionError("This matchup has been cancelled")

    tournament = matchup.tournament
    if tournament.status in TERMINAL_TOURNAMENT_STATUSES:
        raise PreconditionError(f"Tournament {tournament.id} is {tournament.status} and not accepting results")

    team1_ids = list(matchup.team1_ids)
    team2_ids = list(matchup.team2_ids)
    team_size = TEAM_SIZES[tournament.mode]
    if len(team1_ids) != team_size or len(team2_ids) != team_size:
        raise PreconditionError("Tournament configuration for this match is invalid")
    if len(set(team1_ids + team2_ids)) != len(team1_ids + team2_ids):
        raise PreconditionError("Configured teams cannot share players")
    group_members = {p.player_id for p in matchup.group.participants}
    if not set(team1_ids + team2_ids) <= group_members:
        raise PreconditionError("Configured teams must belong to the assigned group")

    validate_score(team1_score, team2_score, target_points, win_by_margin)
    if location is not None and len(location) > MAX_LOCATION_LENGTH:
        raise MatchValidationError(f"Location must be at most {MAX_LOCATION_LENGTH} characters.")
    if note is not None and len(note) > MAX_NOTE_LENGTH:
        raise MatchValidationError(f"Note must be at most {MAX_NOTE_LENGTH} characters.")

    now = utcnow()
    match = Match(
        match_type=tournament.mode,
        status=MATCH_CONFIRMED,
        team1_score=team1_score,
        team2_score=team2_score,
        target_points=target_points,
        win_by_margin=win_by_margin,
        played_at=matchup.scheduled_at or now,
        location=location,
        note=note,
        confirmed_at=now,
        tournament_match=matchup,
    )
    for team_no, team in ((1, team1_ids), (2, team2_ids)):
        for player_id in team:
            match.participants.append(MatchParticipant(player_id=player_id, team_no=team_no))
    session.add(match)
    matchup.status = TOURNAMENT_MATCH_PLAYED
    session.flush()

    rate_confirmed_match(session, match, engine)

    if tournament.status == TOURNAMENT_SCHEDULED:
        tournament.status = TOURNAMENT_ACTIVE

    remaining = _remaining_matchups(session, tournament.id)
    if remaining == 0:
        tournament.status = TOURNAMENT_COMPLETED
    session.flush()

    logger.info(
        "Reported tournament match %s as match %s (%d-%d); tournament %s is %s, %d matchups left",
        matchup.id, match.id, team1_score, team2_score, tournament.id, tournament.status, remaining,
    )
    return match


def transition_tournament(session: Session, tournament_id: int, status: str) -> Tournament:
    """
    Move a tournament to a new status.

    Raises:
        PreconditionError: if the tournament is unknown or the move is not
            allowed (completed and cancelled are final)
    """
    tournament = get_tournament(session, tournament_id)
    assert_tournament_transition(tournament.status, status)

    previous = tournament.status
    tournament.status = status
    session.flush()

    logger.info("Tournament %s: %s -> %s", tournament.id, previous, status)
    return tournament


def get_group_placements(session: Session, group_id: int) -> GroupStandings:
    """
    Current standings for one group.

    Raises:
        PreconditionError: if the group does not exist
    """
    group = session.get(TournamentGroup, group_id)
    if group is None:
        raise PreconditionError(f"Tournament group {group_id} not found")

    records = []
    for matchup in group.matchups:
        result = matchup.result_match
        if result is not None and result.status == MATCH_CANCELLED:
            result = None
        records.append(MatchupRecord(
            team1_ids=matchup.team1_ids,
            team2_ids=matchup.team2_ids,
            status=matchup.status,
            team1_score=result.team1_score if result is not None else None,
            team2_score=result.team2_score if result is not None else None,
        ))

    placements = calculate_placements_for_group(
        group.tournament.mode,
        [p.player_id for p in group.participants],
        records,
    )
    return GroupStandings(
        group_id=group.id,
        name=group.name,
        table_label=group.table_label,
        placements=placements,
    )


def get_tournament_placements(session: Session, tournament_id: int) -> list[GroupStandings]:
    """Standings for every group in a tournament, in group order."""
    tournament = get_tournament(session, tournament_id)
    return [get_group_placements(session, group.id) for group in tournament.groups]


@dataclass
class GroupUpdate:
    """New membership (in seed order) and optional labels for one group."""
    group_id: int
    participant_ids: list[int]
    name: Optional[str] = None
    table_label: Optional[str] = None


@dataclass
class MatchupUpdate:
    """Replacement group, teams, time and status for one matchup."""
    matchup_id: int
    group_id: int
    team1_ids: list[int]
    team2_ids: list[int]
    scheduled_at: Optional[datetime] = None
    status: str = TOURNAMENT_MATCH_SCHEDULED


def _validate_structure_update(
    tournament: Tournament,
    groups: list[GroupUpdate],
    matches: list[MatchupUpdate],
) -> None:
    registered = {p.player_id for p in tournament.participants}
    group_ids = {g.id for g in tournament.groups}
    membership = {
        g.id: {p.player_id for p in tournament.participants if p.group_id == g.id}
        for g in tournament.groups
    }

    seen_groups = set()
    seen_players = set()
    for update in groups:
        if update.group_id not in group_ids:
            raise PreconditionError(f"Group {update.group_id} is not part of tournament {tournament.id}")
        if update.group_id in seen_groups:
            raise PreconditionError(f"Group {update.group_id} is listed more than once")
        seen_groups.add(update.group_id)
        for player_id in update.participant_ids:
            if player_id not in registered:
                raise PreconditionError("Group assignments must reference registered participants")
            if player_id in seen_players:
                raise PreconditionError("Participants cannot be assigned to multiple groups")
            seen_players.add(player_id)
        membership[update.group_id] = set(update.participant_ids)
    for group_id in group_ids - seen_groups:
        membership[group_id] -= seen_players

    names = {g.id: g.name for g in tournament.groups}
    names.update({u.group_id: u.name for u in groups if u.name is not None})
    if len(set(names.values())) != len(names):
        raise PreconditionError("Group names must be unique")

    matchups = {m.id: m for m in tournament.matches}
    team_size = TEAM_SIZES[tournament.mode]
    for update in matches:
        matchup = matchups.get(update.matchup_id)
        if matchup is None:
            raise PreconditionError(f"Matchup {update.matchup_id} is not part of tournament {tournament.id}")
        if matchup.status == TOURNAMENT_MATCH_PLAYED:
            raise PreconditionError(f"Matchup {matchup.id} has already been played")
        if update.group_id not in group_ids:
            raise PreconditionError(f"Group {update.group_id} is not part of tournament {tournament.id}")
        if update.status not in ALL_TOURNAMENT_MATCH_STATUSES:
            raise PreconditionError(f"Unknown matchup status: {update.status!r}")
        if update.status == TOURNAMENT_MATCH_PLAYED:
            raise PreconditionError("Matchups are marked played by reporting a result")

        combined = list(update.team1_ids) + list(update.team2_ids)
        if len(combined) != len(set(combined)):
            raise PreconditionError("Teams cannot share players")
        if len(update.team1_ids) != team_size or len(update.team2_ids) != team_size:
            raise PreconditionError(f"Teams must have {team_size} player(s) in a {tournament.mode} tournament")
        for player_id in combined:
            if player_id not in registered:
                raise PreconditionError("Matches must reference registered participants")
            if player_id not in membership[update.group_id]:
                raise PreconditionError("Match participants must belong to the specified group")


def update_tournament_structure(
    session: Session,
    tournament_id: int,
    status: Optional[str] = None,
    groups: Optional[list[GroupUpdate]] = None,
    matches: Optional[list[MatchupUpdate]] = None,
) -> Tournament:
    """
    Manually rearrange a tournament: its status, group memberships and matchups.

    Group membership is checked as it will be after the update, so a player
    can be moved into a group and given a matchup there in one call. Listed
    participants are seeded in the order given. A matchup update replaces
    its group, teams and status; ``scheduled_at`` is kept when not given.
    Played matchups cannot be edited, and nothing is written unless every
    change is valid.

    An active tournament with no scheduled matchups left is completed.

    Raises:
        PreconditionError: if the tournament, a group or a matchup is
            unknown, a status move is illegal, or any assignment breaks the
            tournament's membership or team-size rules
    """
    tournament = get_tournament(session, tournament_id)
    groups = groups or []
    matches = matches or []

    if status is not None and status != tournament.status:
        assert_tournament_transition(tournament.status, status)
    _validate_structure_update(tournament, groups, matches)

    if status is not None and status != tournament.status:
        logger.info("Tournament %s: %s -> %s", tournament.id, tournament.status, status)
        tournament.status = status

    groups_by_id = {g.id: g for g in tournament.groups}
    participants = {p.player_id: p for p in tournament.participants}
    for update in groups:
        group = groups_by_id[update.group_id]
        if update.name is not None:
            group.name = update.name
        if update.table_label is not None:
            group.table_label = update.table_label

        for participant in participants.values():
            if participant.group is group:
                participant.group = None
                participant.seed = None
        for seed, player_id in enumerate(update.participant_ids, start=1):
            participants[player_id].group = group
            participants[player_id].seed = seed

    matchups = {m.id: m for m in tournament.matches}
    for update in matches:
        matchup = matchups[update.matchup_id]
        matchup.group = groups_by_id[update.group_id]
        matchup.team1_ids = list(update.team1_ids)
        matchup.team2_ids = list(update.team2_ids)
        if update.scheduled_at is not None:
            matchup.scheduled_at = update.scheduled_at
        matchup.status = update.status

    session.flush()
    for group in tournament.groups:
        session.expire(group, ["participants", "matchups"])

    if tournament.status == TOURNAMENT_ACTIVE and _remaining_matchups(session, tournament.id) == 0:
        logger.info("Tournament %s has no scheduled matchups left, completing", tournament.id)
        tournament.status = TOURNAMENT_COMPLETED
        session.flush()

    logger.info(
        "Updated tournament %s structure: %d groups, %d matchups",
        tournament.id, len(groups), len(matches),
    )
    return tournament
