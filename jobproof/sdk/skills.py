"""Skill extraction and job description drafting on the enclave model.

Each helper is one generate call with its own prompt. Skill lists are
cleaned so only the comma-separated list the model was asked for remains.
"""

from __future__ import annotations

import logging
import re

from jobproof.sdk.inference import SignedInferenceClient
from jobproof.sdk.models import RunContext

logger = logging.getLogger(__name__)

_LEADING_NOISE = re.compile(r"^.*?(?=\w)", re.ASCII)
_TRAILING_NOISE = re.compile(r"[.:](?:\s*\Z|\s*\n.*\Z)")


def build_description_skills_prompt(job_description: str) -> str:
    return f"""Analyze the following job description and extract only the technical skills, technologies, frameworks, programming languages, and tools mentioned or required.

Your response should ONLY contain the extracted skills as a comma-separated list with no additional text, explanations, or formatting.

For example, a good response would be: "JavaScript, React, Node.js, TypeScript, Git, AWS"

Job Description:
{job_description}"""


def build_job_description_prompt(skills: str, job_title: str | None = None) -> str:
    title_context = f"for a {job_title} position" if job_title else ""
    return f"""Create a comprehensive job description {title_context} that requires the following skills and technologies: {skills}

Your response should be a well-structured job description that includes:
- Key responsibilities
- Required qualifications
- Technical requirements
- What the candidate will work on

Make it professional and detailed, focusing on how these skills will be used in the role.

Skills: {skills}"""


def build_resume_skills_prompt(resume: str) -> str:
    return f"""Analyze the following resume and extract all relevant technical skills, programming languages, frameworks, libraries, tools, technologies, certifications, and professional competencies mentioned.

Your response should ONLY contain the extracted skills as a comma-separated list with no additional text, explanations, or formatting.

Include:
- Programming languages (e.g., JavaScript, Python, Java)
- Frameworks and libraries (e.g., React, Angular, Django)
- Tools and platforms (e.g., Git, Docker, AWS)
- Databases (e.g., MySQL, MongoDB, PostgreSQL)
- Methodologies (e.g., Agile, Scrum)
- Certifications and qualifications
- Soft skills if clearly mentioned

For example, a good response would be: "JavaScript, React, Node.js, Python, AWS, Git, MySQL, Agile, Project Management"

Resume:
{resume}"""


def clean_skills_list(text: str) -> str:
    """Strip chatter before the first word and a trailing period or colon with anything after it."""
    text = _LEADING_NOISE.sub("", text, count=1)
    text = _TRAILING_NOISE.sub("", text, count=1)
    return text.strip()


class SkillsAssistant:
    """Runs the skill and job description prompts against the enclave model."""

    def __init__(self, inference: SignedInferenceClient, context: RunContext):
        if not inference:
            raise ValueError("Inference client is required")
        self.inference = inference
        self.context = context

    def extract_skills_from_description(self, job_description: str) -> str:
        """Comma-separated skills required by a job description."""
        if not job_description or not job_description.strip():
            raise ValueError("Job description is required")
        return clean_skills_list(self._generate(build_description_skills_prompt(job_description)))

    def extract_skills_from_resume(self, resume: str) -> str:
        """Comma-separated skills found in a resume."""
        if not resume or not resume.strip():
            raise ValueError("Resume text is required")
        return clean_skills_list(self._generate(build_resume_skills_prompt(resume)))

    def generate_job_description(self, skills: str, job_title: str | None = None) -> str:
        """Draft a job description around a skills list."""
        if not skills or not skills.strip():
            raise ValueError("Skills are required")
        return self._generate(build_job_description_prompt(skills, job_title)).strip()

    def _generate(self, prompt: str) -> str:
        result = self.inference.infer(self.context.enclave_host, prompt, self.context.model)
        logger.info("Assistant generation returned %d chars", len(result.text))
        return result.text
