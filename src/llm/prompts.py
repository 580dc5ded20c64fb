"""
Prompt templates for the reasoning stages.
"""

import json
from typing import Any

SCORING_GUIDE = {
    "technicalSkillsMatch": {
        "description": "Alignment with job requirements",
        "scoring": {
            "1": "Irrelevant skills",
            "2": "Few overlaps",
            "3": "Partial match",
            "4": "Strong match",
            "5": "Excellent match + AI/LLM exposure",
        },
    },
    "experienceLevel": {
        "description": "Years of experience and project complexity",
        "scoring": {
            "1": "<1 yr / trivial projects",
            "2": "1-2 yrs",
            "3": "3-4 yrs with mid-size projects",
            "4": "5-6 yrs solid track record",
            "5": "6+ yrs / high-impact projects",
        },
    },
    "relevantAchievements": {
        "description": "Impact of past work (scaling, performance, adoption)",
        "scoring": {
            "1": "No clear achievements",
            "2": "Minimal improvements",
            "3": "Some measurable outcomes",
            "4": "Significant contributions",
            "5": "Major measurable impact",
        },
    },
    "culturalFit": {
        "description": "Communication, learning mindset, teamwork/leadership",
        "scoring": {
            "1": "Not demonstrated",
            "2": "Minimal",
            "3": "Average",
            "4": "Good",
            "5": "Excellent and well-demonstrated",
        },
    },
}


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


EXTRACTION_SYSTEM_PROMPT = """You are an expert CV parsing engine. Your first job is to find the candidate's NAME.
Extract all information from any kind of CV (tech, creative, business, healthcare, ...) into structured JSON.
Respond ONLY with valid JSON. No markdown, no explanation."""


def extraction_prompt(raw_text: str) -> str:
    return f"""Extract information from this CV text:

\"\"\"
{raw_text}
\"\"\"

## Name extraction:
1. The candidate's name is mandatory. It is usually the first heading or largest text at the top,
   or appears after "Resume", "CV" or "Curriculum Vitae", before contact details.
2. A name is typically 2-4 capitalized words.
3. Do not answer "Unknown Candidate" unless no name-like text exists at all.

## Other fields:
- Email, phone and location from the contact section
- ALL skills relevant to the candidate's own industry (tools, software, soft skills)
- Work experience: company, position, dates, what they did, achievements, tools used
- Seniority from total years of experience:
  0-2 years = "Entry-level" or "Junior", 2-5 = "Mid-level", 5+ = "Senior", 8+ = "Lead" or "Principal"

Respond in the following JSON format only:

{{
  "name": "Full Name",
  "email": "email@example.com",
  "phone": "",
  "location": "",
  "summary": "Brief professional summary if available",
  "skills": ["skill1", "skill2"],
  "work_experience": [
    {{
      "company": "Company Name",
      "position": "Job Title",
      "start_date": "YYYY-MM or YYYY",
      "end_date": "YYYY-MM or YYYY or Present",
      "description": "What they did in this role",
      "achievements": "Key achievements and impact",
      "tech_stack": ["tool1", "tool2"]
    }}
  ],
  "education": [
    {{"institution": "School", "degree": "Degree", "start_date": "YYYY", "end_date": "YYYY"}}
  ],
  "seniority": "Entry-level|Junior|Mid-level|Senior|Lead|Principal"
}}"""


EVALUATION_SYSTEM_PROMPT = f"""You are an expert recruiter evaluating a CV against job requirements.
Score each criterion from 0.0 to 5.0 following this guide:

{_dump(SCORING_GUIDE)}

"aiExperience" measures hands-on exposure to AI/LLM tooling on the same 0-5 scale.

Respond ONLY with valid JSON in this structure:
{{
  "strengths": ["..."],
  "gaps": ["..."],
  "feedback": "...",
  "scores": {{
    "technicalSkillsMatch": <0.0-5.0>,
    "experienceLevel": <0.0-5.0>,
    "relevantAchievements": <0.0-5.0>,
    "culturalFit": <0.0-5.0>,
    "aiExperience": <0.0-5.0>
  }}
}}"""


def evaluation_prompt(profile: dict[str, Any], job: dict[str, Any], context: list[str]) -> str:
    reference = "\n\n".join(context) if context else "(none)"
    return f"""Evaluate this candidate against the job requirements.

## Job Requirements:
{_dump(job)}

## Reference material:
{reference}

## Candidate:
{_dump(profile)}

Explain the reasoning behind each score in "feedback".
Respond with the JSON structure from the instructions only."""


SUMMARY_SYSTEM_PROMPT = """You are a hiring manager giving a final recommendation on a candidate.
The overall summary must be 3-5 sentences covering strengths, gaps and a recommendation.
Respond ONLY with valid JSON."""


def summary_prompt(evaluation: dict[str, Any]) -> str:
    return f"""Based on this evaluation, give a final candidate assessment:

{_dump(evaluation)}

Respond in the following JSON format only:

{{"overall_summary": "3-5 sentences", "recommendation": "STRONG_YES | YES | CONDITIONAL | NO"}}"""


ROLE_SYSTEM_PROMPT = "You are an expert career advisor with knowledge across all industries."


def role_suggestion_prompt(profile: dict[str, Any]) -> str:
    return f"""Analyze this CV and suggest the most suitable job roles:

{_dump(profile)}

1. Identify the candidate's primary industry
2. Suggest the 3 most suitable job titles in that industry
3. Confirm or adjust seniority based on years of experience, project complexity and leadership

Seniority levels: "Entry-level"/"Junior" 0-2 years, "Mid-level" 2-5, "Senior" 5-8, "Lead"/"Principal" 8+.

Respond in the following JSON format only:

{{"suggested_roles": ["Role 1", "Role 2", "Role 3"], "seniority": "Entry-level|Junior|Mid-level|Senior|Lead"}}"""


MATCH_SUMMARY_SYSTEM_PROMPT = "You are an expert career advisor providing actionable recommendations."


def match_summary_prompt(
    profile: dict[str, Any], roles: dict[str, Any], matches: list[dict[str, Any]]
) -> str:
    return f"""Review this candidate's profile and job matches and give career advice.

## CV Profile:
{_dump(profile)}

## Suggested Roles:
{_dump(roles)}

## Job Matches:
{_dump(matches)}

Give the top 3 strengths, top 3 improvement areas and top 3 actionable next steps,
one sentence each.

Respond in the following JSON format only:

{{"summary": {{"strengths": ["..."], "improvements": ["..."], "next_steps": ["..."]}}}}"""


SKILL_SYSTEM_PROMPT = (
    "You are an expert recruiter evaluating skill alignment between candidates "
    "and job requirements across all industries."
)


def skill_score_prompt(skills: list[str], requirements: list[str]) -> str:
    return f"""Rate how well the candidate's skills cover the job requirements.

## Candidate Skills:
{_dump(skills)}

## Job Requirements:
{_dump(requirements)}

Guidelines: 90-100 excellent, 70-89 strong, 50-69 moderate, 30-49 weak, 0-29 poor.
Count direct matches, transferable skills and similar tools in the same category.

Respond in the following JSON format only:

{{"score": <0-100>}}"""


PROJECT_EVALUATION_SYSTEM_PROMPT = """You are a senior software engineer evaluating technical project reports.
Score each criterion from 1 to 5:
- Correctness (30%): meets the functional requirements
- Code Quality (25%): clean, modular, follows best practices
- Resilience (20%): handles errors, retries transient failures
- Documentation (15%): clear README and code comments
- Creativity (10%): bonus features, innovative solutions

Respond ONLY with valid JSON in this structure:
{
  "feedback": "...",
  "strengths": ["..."],
  "improvements": ["..."],
  "scores": {
    "correctness": <1-5>,
    "code_quality": <1-5>,
    "resilience": <1-5>,
    "documentation": <1-5>,
    "creativity": <1-5>
  }
}"""


def project_evaluation_prompt(report_text: str, rubric: list[str]) -> str:
    guide = "\n".join(f"- {line}" for line in rubric)
    return f"""Evaluate this project report.

## Scoring rubric:
{guide}

## Project report:
\"\"\"
{report_text}
\"\"\"

Respond with the JSON structure from the instructions only."""
