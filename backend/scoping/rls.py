"""
Render Postgres row-level-security policies from the policy rule table.

Why:
    The application evaluator (`policy.RULES`) and the database policies must
    not drift. Instead of hand-maintaining one `create policy` per role and
    table, this module derives them from the same rules. The database layer is
    defense in depth; the application still checks every resource.

Behavior:
    - Helper functions read the acting identity from the transaction-local
      setting `app.current_sub` (set by the repositories via `set_config`).
    - One SELECT policy per (rule, table); UPDATE policies on records for the
      rules that allow WRITE; INSERT policies on comments for the rules that
      allow COMMENT, pinned to `author_id = current actor`.
    - Owner-only INSERTs (new records and their field values) and self-profile
      reads are rendered as fixed policies.
"""
from __future__ import annotations

from .policy import RULES, Action, ResourceKind, Rule, Scope


# Table and owner column per resource kind. Files are stored outside the
# database and carry no row policy.
OWNER_COLUMNS: dict[ResourceKind, tuple[str, str]] = {
    ResourceKind.PROFILE: ("public.user_profiles", "userid"),
    ResourceKind.RECORD: ("public.daily_records", "owner_id"),
    ResourceKind.FIELD_VALUE: ("public.record_field_values", "owner_id"),
    ResourceKind.COMMENT: ("public.comments", "student_id"),
}

_APPLIES_SQL: dict[str, str] = {
    "admin_all": "public.harian_actor_role() = 'admin'",
    "teacher_home_class": "public.harian_actor_role() = 'teacher'",
    "supervisor_classes": "public.harian_actor_can_supervise()",
    "parent_dependent": "public.harian_actor_role() = 'parent'",
    "student_self": "public.harian_actor_role() = 'student'",
}

_SCOPE_SQL: dict[Scope, str] = {
    Scope.ALL: "true",
    Scope.HOME_CLASS: "public.harian_is_student_in({owner}, array[public.harian_actor_home_class()])",
    Scope.SUPERVISED_CLASSES: "public.harian_is_student_in({owner}, public.harian_actor_supervised_classes())",
    Scope.DEPENDENT: "{owner} = public.harian_actor_dependent()",
    Scope.SELF: "{owner} = public.harian_current_actor()",
}

HELPER_FUNCTIONS = """\
create or replace function public.harian_current_actor()
returns text language sql stable as $$
  select nullif(current_setting('app.current_sub', true), '')
$$;

create or replace function public.harian_actor_role()
returns text language sql stable security definer set search_path = public as $$
  select role from public.user_profiles where userid = public.harian_current_actor()
$$;

create or replace function public.harian_actor_home_class()
returns text language sql stable security definer set search_path = public as $$
  select kelas from public.user_profiles where userid = public.harian_current_actor()
$$;

create or replace function public.harian_actor_dependent()
returns text language sql stable security definer set search_path = public as $$
  select parent_of_userid from public.user_profiles where userid = public.harian_current_actor()
$$;

create or replace function public.harian_actor_can_supervise()
returns boolean language sql stable security definer set search_path = public as $$
  select coalesce((
    select role = 'supervisor' or (is_supervisor and role in ('teacher', 'supervisor'))
    from public.user_profiles where userid = public.harian_current_actor()
  ), false)
$$;

create or replace function public.harian_actor_supervised_classes()
returns text[] language sql stable security definer set search_path = public as $$
  select coalesce(array_agg(distinct supervised_class), '{}')
  from public.supervision where supervisor_id = public.harian_current_actor()
$$;

create or replace function public.harian_is_student_in(owner text, classes text[])
returns boolean language sql stable security definer set search_path = public as $$
  select exists (
    select 1 from public.user_profiles p
    where p.userid = owner and p.role = 'student'
      and p.kelas is not null and p.kelas = any(classes)
  )
$$;
"""


def rule_condition(rule: Rule, owner_column: str) -> str:
    """SQL boolean for "rule applies to the current actor and covers the owner"."""
    try:
        applies = _APPLIES_SQL[rule.name]
        scope = _SCOPE_SQL[rule.scope]
    except KeyError as exc:
        raise ValueError(f"rule without SQL rendering: {rule.name}") from exc
    return f"({applies}) and ({scope.format(owner=owner_column)})"


def _policy(name: str, table: str, command: str, *, using: str | None = None, check: str | None = None) -> str:
    lines = [
        f'drop policy if exists "{name}" on {table};',
        f'create policy "{name}" on {table} for {command}',
    ]
    if using is not None:
        lines.append(f"  using ({using})")
    if check is not None:
        lines.append(f"  with check ({check})")
    lines[-1] += ";"
    return "\n".join(lines)


def render_policies() -> str:
    """Return the complete, idempotent RLS script for all scoped tables."""
    blocks: list[str] = [HELPER_FUNCTIONS]
    for kind, (table, owner) in OWNER_COLUMNS.items():
        blocks.append(f"alter table {table} enable row level security;")
        for rule in RULES:
            if Action.READ in rule.actions:
                blocks.append(
                    _policy(f"{rule.name}_read_{kind.value}", table, "select", using=rule_condition(rule, owner))
                )
    records_table, records_owner = OWNER_COLUMNS[ResourceKind.RECORD]
    for rule in RULES:
        if Action.WRITE in rule.actions:
            cond = rule_condition(rule, records_owner)
            blocks.append(_policy(f"{rule.name}_validate_record", records_table, "update", using=cond, check=cond))
    comments_table, comments_owner = OWNER_COLUMNS[ResourceKind.COMMENT]
    for rule in RULES:
        if Action.COMMENT in rule.actions:
            cond = rule_condition(rule, comments_owner)
            check = f"author_id = public.harian_current_actor() and {cond}"
            blocks.append(_policy(f"{rule.name}_comment", comments_table, "insert", check=check))
    # Owners create their own records; profiles are always self-readable.
    for kind in (ResourceKind.RECORD, ResourceKind.FIELD_VALUE):
        table, owner = OWNER_COLUMNS[kind]
        blocks.append(
            _policy(f"owner_insert_{kind.value}", table, "insert", check=f"{owner} = public.harian_current_actor()")
        )
    profiles_table, profiles_owner = OWNER_COLUMNS[ResourceKind.PROFILE]
    blocks.append(
        _policy("self_read_profile", profiles_table, "select", using=f"{profiles_owner} = public.harian_current_actor()")
    )
    blocks.append("alter table public.supervision enable row level security;")
    blocks.append(
        _policy(
            "supervisor_read_own_rows",
            "public.supervision",
            "select",
            using="supervisor_id = public.harian_current_actor() or public.harian_actor_role() = 'admin'",
        )
    )
    blocks.append("alter table public.submission_window enable row level security;")
    blocks.append(_policy("window_read_all", "public.submission_window", "select", using="true"))
    admin = "public.harian_actor_role() = 'admin'"
    blocks.append(_policy("window_admin_update", "public.submission_window", "update", using=admin, check=admin))
    return "\n\n".join(blocks) + "\n"


__all__ = ["OWNER_COLUMNS", "HELPER_FUNCTIONS", "rule_condition", "render_policies"]
