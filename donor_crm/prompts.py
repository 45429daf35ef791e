"""
Prompts for donor email generation, website summaries, donor analysis and person research.

The WhatsApp assistant prompt lives in donor_agent/prompts.py.
"""

# =============================================================================
# EMAIL GENERATION
# =============================================================================

EMAIL_SYSTEM_PROMPT = """You are an expert in donor communications writing personalized emails.

CONTEXT:
Organization: {organization_name}
{organization_description}{current_date}{writing_guidelines}

{personal_memories}
{organization_memories}

{organization_summary}

TASK: {instruction}

REQUIREMENTS:
- Subject line: Personal, emotional, under 50 characters
- Email structure: Opening acknowledgment, emotional impact, time anchor, clear ask, call to action
- Tone: Warm, personal, confident
- Length: 120-150 words
- Reference specific donation amounts and dates from the history when available
- Use the current date context for time-sensitive references and seasonal messaging
- DO NOT include any signature or closing in the email - this will be automatically added by the system

IMPORTANT INSTRUCTIONS:
1. For the "piece" field: Write natural email text WITHOUT any reference IDs like [donation-1] or [comm-2-1]
2. For the "references" field: Include the context IDs that informed each piece (e.g., ["donation-1", "summary-paragraph-2"])
3. For "add_newline_after": Use true for paragraph breaks, false for continuing sentences
4. DO NOT use "-" or "--" in the email ever.
5. DO NOT include any closing, signature, or sign-off (like "Best regards", "Sincerely", etc.)
6. PRIORITY: If there are User Notes about the donor, those take precedence over Organization Memories or Writing Guidelines if there's any conflict.

If the requirements or the important instructions conflict with the task, prioritize the task.

OUTPUT FORMAT:
Respond with ONLY a JSON object:
{{
  "subject": "Your Impact on Families in Need",
  "content": [
    {{"piece": "Dear John,", "references": [], "add_newline_after": true}},
    {{"piece": "Your gift last spring kept our food pantry open.", "references": ["donation-1"], "add_newline_after": false}}
  ]
}}"""

EMAIL_DONOR_CONTEXT = """Donor: {donor_name} ({donor_email})
{donor_notes}
Donation History:
{donation_history}

Past Communications:
{communication_history}"""

# =============================================================================
# WEBSITE SUMMARY
# =============================================================================

WEBSITE_SUMMARY_PROMPT = """Summarize the following website content for a nonprofit's fundraising purposes. Focus on extracting these key details:

1. Mission and impact story: a clear, concise mission statement and 2-3 compelling stories about specific people or communities the nonprofit has helped, with concrete before/after outcomes.
2. Target audience: who the donors are, what they care about and what motivates them to give. Infer this if it is not stated.
3. Tone and voice: formal or informal, urgent or measured, emotional or factual. Infer this if it is not stated.
4. Campaign goals: what the organization is raising money for, with target amounts and deadlines when given.
5. Key statistics and credibility markers: people served, success rates, awards, endorsements.
6. Unique value proposition: what sets the nonprofit apart and why donors should support it.

Write the summary as plain paragraphs separated by blank lines.

Website Content:
---
{content}
---"""


# =============================================================================
# DONOR ANALYSIS (WhatsApp assistant)
# =============================================================================

DONOR_ANALYSIS_SYSTEM_PROMPT = """You are an AI assistant analyzing donor data for a nonprofit organization.
You have been provided with donor histories including donations, notes, communications, research insights and open tasks.
Answer the question based on the data provided. Be specific and cite relevant information from the donor records.
If the data does not contain enough information to fully answer the question, say what additional information would help."""

DONOR_ANALYSIS_PROMPT = """Here is the donor data:

{donor_profiles}

Question: {question}

Please analyze the donor data and answer the question."""


# =============================================================================
# PERSON RESEARCH
# =============================================================================

QUERY_GENERATION_PROMPT = """Your goal is to generate natural, concise web search queries that real people would actually use. These queries will be used by an automated web research tool.

Instructions:
- Generate {max_queries} or fewer simple, natural search queries
- Write queries like a human would actually search (short and direct)
- Each query should explore a different angle of the research topic
- Keep queries brief, typically 2-5 words unless absolutely necessary to be longer
- Avoid redundant or overly similar queries
- Current date: {current_date}

Examples of GOOD vs BAD queries:
- GOOD: "John Smith CEO", BAD: "John Smith chief executive officer biography and leadership profile"
- GOOD: "climate change causes", BAD: "environmental factors contributing to global climate change phenomenon"
{context}
Research Topic: {research_topic}

Format your response as a JSON object with these exact keys:
- "rationale": Brief explanation of your query selection strategy
- "query": Array of {max_queries} or fewer natural search queries"""

QUERY_INITIAL_CONTEXT = """
INITIAL RESEARCH:
- This is your first search on this topic
- Generate simple queries covering different angles
"""

QUERY_FOLLOW_UP_CONTEXT = """
FOLLOW-UP CONTEXT:
- You already searched: [{previous_queries}]
- Now generate different, simple queries to find more info
- Don't repeat what you already searched
"""

SEARCH_SUMMARY_PROMPT = """You are conducting research on "{research_topic}" using web search results and crawled content.

Instructions:
- Current date: {current_date}
- Prioritize information from crawled content over search snippets when available
- Only include verifiable information from the provided sources
- Focus on details most relevant to the research topic

Research Topic: {research_topic}
Search Query: {query}

Search Results and Content:
{results}

Provide a comprehensive, well-structured summary that focuses on information that directly addresses the research topic "{research_topic}"."""

IDENTITY_EXTRACTION_PROMPT = """Extract key identity information about a specific person based on the provided data. Your goal is to create a clear identity profile that can be used to verify if future search results are about the same person.

DONOR INFORMATION:
- Full Name: {full_name}
{location}{notes}
TASK:
1. Extract specific identity details from the provided information
2. Generate a list of "key identifiers" that uniquely identify this person
3. Rate your confidence in the extracted identity information (0-1)
{search_results}

Respond with ONLY a JSON object with keys: "full_name", "probable_age", "location", "profession", "education", "organizations", "key_identifiers" (array), "confidence" (0-1), "reasoning"."""

VERIFICATION_PROMPT = """Determine if the following search result is about the same person whose identity information is provided below.

PERSON IDENTITY:
{identity}

KEY IDENTIFIERS:
{key_identifiers}

SEARCH RESULT TO VERIFY:
- Title: {title}
- URL: {url}
- Snippet: {snippet}
{content}
EVALUATION CRITERIA:
- If the search result lacks sufficient information to make a determination, lean toward NOT RELEVANT
- If there are clear contradictions (different location, age, profession), mark as NOT RELEVANT
- If multiple identifiers match and there are no contradictions, mark as RELEVANT

Respond with ONLY a JSON object with keys: "is_relevant" (boolean), "confidence" (0-1), "matching_identifiers" (array), "contradictions" (array), "reasoning"."""

REFLECTION_PROMPT = """You are an expert research assistant analyzing research completeness for the topic: "{research_topic}".

Instructions:
- Evaluate whether the provided research summaries provide sufficient information to comprehensively answer the research topic
- Identify specific knowledge gaps or areas needing deeper exploration
- Generate focused follow-up queries only if significant gaps exist
- If information is sufficient, mark as complete

Output Format:
Format your response as a JSON object with these exact keys:
- "is_sufficient": true or false
- "knowledge_gap": Describe what information is missing (empty string if sufficient)
- "follow_up_queries": Array of specific questions to address gaps (empty array if sufficient)

Research Topic: {research_topic}

Research Summaries:
{summaries}"""

SYNTHESIS_PROMPT = """Generate a high-quality, comprehensive answer based on the provided research summaries and crawled content.

Instructions:
- Current date: {current_date}
- Prioritize information from crawled content when available
- Include specific facts, figures, and details from the sources
- Only use information that's actually present in the sources
- Reference sources appropriately throughout your answer

Research Topic: {research_topic}

Research Summaries and Sources:
{summaries}

Provide a comprehensive, well-structured answer to: "{research_topic}"."""

EXTRACTION_PROMPT = """You are an expert analyst tasked with extracting structured data about a person from research results.

Research Topic: {research_topic}

Research Answer:
{answer}

Research Summaries and Sources:
{summaries}

Based on the research above, extract:
1. "inferred_age": the person's age or an estimate from graduation years or career timeline, as a number, or null
2. "employer": current or most recent employer, or null
3. "estimated_income": a range like "$100,000-$150,000", or "Not disclosed"
4. "high_potential_donor": true or false, based on financial capacity, giving history, professional status and community involvement
5. "high_potential_donor_rationale": 2-3 sentences citing specific evidence

Be conservative in your assessments. Respond with ONLY a JSON object with exactly those keys."""

DONOR_RESEARCH_TOPIC = (
    "What motivates {donor_name}{address_info}{email_info} to donate to nonprofits? "
    "Analyze their background, interests, values, and philanthropic history. "
    "What specific aspects of a {org_description} would appeal to them based on their profile?{notes_info}"
)
