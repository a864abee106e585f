"""Prompt template and structured-output schema for light profile analysis."""

from __future__ import annotations

from profile_analysis.models import SUMMARY_MAX_CHARS, BusinessProfile, ProfileData

LIGHT_SYSTEM_PROMPT = (
    "Score influencer 0-100 for partnership potential. "
    "Provide 2-3 sentence summary. Return JSON only."
)

# Posts included in the prompt and caption length per post
PROMPT_POST_LIMIT = 6
PROMPT_CAPTION_CHARS = 40

LIGHT_ANALYSIS_SCHEMA = {
    "name": "LightAnalysisResult",
    "strict": True,
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "overall_score": {"type": "integer", "minimum": 0, "maximum": 100},
            "summary_text": {"type": "string", "maxLength": SUMMARY_MAX_CHARS},
        },
        "required": ["overall_score", "summary_text"],
    },
}

LIGHT_ANALYSIS_PROMPT = """You are analyzing @{username} for {business_name}.

Business context:
- Niche: {business_niche}
- Target audience: {target_audience}
- Value proposition: {business_one_liner}

Profile: {followers:,} followers, {engagement_rate} ER
Bio: "{bio}"

Recent posts ({post_count}):
{posts}

Score this profile 0-100 for partnership potential.
Provide 2-3 sentence summary explaining the score (max {summary_max} characters).

Return JSON:
{{
  "overall_score": 0-100,
  "summary_text": "2-3 sentences"
}}"""


def build_light_analysis_prompt(profile: ProfileData, business: BusinessProfile) -> str:
    posts = profile.latest_posts[:PROMPT_POST_LIMIT]
    post_lines = [
        f'{i + 1}. "{(p.caption[:PROMPT_CAPTION_CHARS] or "No caption")}..." '
        f"({p.likes_count} likes, {p.comments_count} comments)"
        for i, p in enumerate(posts)
    ]
    engagement_rate = (
        f"{profile.engagement.engagement_rate}%" if profile.engagement else "Unknown"
    )

    return LIGHT_ANALYSIS_PROMPT.format(
        username=profile.username,
        business_name=business.business_name or "the business",
        business_niche=business.business_niche or "Not specified",
        target_audience=business.target_audience or "General",
        business_one_liner=business.business_one_liner or "Not specified",
        followers=profile.followers_count,
        engagement_rate=engagement_rate,
        bio=profile.bio or "No bio",
        post_count=len(posts),
        posts="\n".join(post_lines) or "No recent posts",
        summary_max=SUMMARY_MAX_CHARS,
    )
